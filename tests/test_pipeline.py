"""Tests for the dependency-ordered sync pipeline against an in-memory store."""

import pytest

from etl import stages
from etl.errors import ReferentialIntegrityError, StageError, StageOrderError
from etl.extract import fetch_states_csv, fetch_turbines_csv
from etl.models import StateRecord, StateType
from etl.pipeline import SyncPipeline
from etl.stages import Stage, WriteMode
from etl.transform import transform_states, transform_turbines

from conftest import state_row, turbine_row


def load_states(states_csv, rows):
    return transform_states(fetch_states_csv(states_csv(rows)))


def load_turbines(turbines_csv, rows):
    return transform_turbines(fetch_turbines_csv(turbines_csv(rows)))


@pytest.fixture
def turbine_rows():
    return [
        turbine_row(case_id="1"),
        turbine_row(case_id="2", t_model="V90", t_cap="3000"),
        turbine_row(case_id="3", t_county="Riverside County", p_name="San Gorgonio", p_tnum="10", p_cap="6.5",
                    t_manu="", t_model="unknown", t_img_srce="", t_img_date="2012-01-01"),
        turbine_row(case_id="4", t_state="TX", t_county="Nolan County", p_name="Sweetwater", p_tnum="5",
                    p_cap="", t_manu="Siemens", t_model="SWT-2.3-93", t_img_srce="Digital Globe"),
    ]


@pytest.fixture
def seeded_states(store):
    for abbreviation in ("CA", "TX"):
        store.tables[stages.STATE][abbreviation] = StateRecord(StateType.STATE, abbreviation, abbreviation)
    return store


class TestStatesSync:
    def test_end_to_end_prunes_and_updates(self, pipeline, store, states_csv):
        pipeline.sync_states(load_states(states_csv, [state_row("CA"), state_row("TX")]))
        assert set(store.tables[stages.STATE]) == {"CA", "TX"}

        pipeline.sync_states(load_states(states_csv, [state_row("CA", Population="40000000")]))

        assert set(store.tables[stages.STATE]) == {"CA"}
        assert store.tables[stages.STATE]["CA"].population == 40000000

    def test_absent_state_is_pruned(self, pipeline, store, states_csv):
        store.tables[stages.STATE]["ZZ"] = StateRecord(StateType.TERRITORY, "Nowhere", "ZZ")
        rows = [state_row("CA"), state_row("TX"), state_row("CA", Name="Duplicate")]

        [result] = pipeline.sync_states(load_states(states_csv, rows))

        assert "ZZ" not in store.tables[stages.STATE]
        assert len(store.tables[stages.STATE]) == 2
        assert result.deleted == 1
        assert result.duplicates == 1
        assert store.tables[stages.STATE]["CA"].name == "State CA"

    def test_second_identical_run_changes_nothing(self, pipeline, store, states_csv):
        records = load_states(states_csv, [state_row("CA"), state_row("TX")])

        [first] = pipeline.sync_states(records)
        snapshot = store.snapshot()
        [second] = pipeline.sync_states(records)

        assert store.snapshot() == snapshot
        assert first.inserted == 2
        assert (second.inserted, second.updated, second.unchanged, second.deleted) == (0, 0, 2, 0)

    def test_quoted_abbreviation_is_kept(self, pipeline, store):
        quoted = StateRecord(StateType.TERRITORY, "O'Brien Isle", "O'")

        pipeline.sync_states([quoted])

        assert set(store.tables[stages.STATE]) == {"O'"}


class TestTurbinesSync:
    def test_every_turbine_reference_resolves(self, pipeline, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states

        pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        assert len(store.turbines) == 4
        for turbine in store.turbines:
            assert turbine.county in store.tables[stages.COUNTY]
            assert turbine.project in store.tables[stages.PROJECT]
            assert turbine.model in store.tables[stages.MODEL]
            assert turbine.image_source in store.tables[stages.IMAGE_SOURCE]

    def test_parents_written_before_children(self, pipeline, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states

        pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        order = [kind for i, kind in enumerate(store.writes) if i == 0 or store.writes[i - 1] != kind]
        assert order == [
            stages.COUNTY,
            stages.MANUFACTURER,
            stages.MODEL,
            stages.IMAGE_SOURCE,
            stages.PROJECT,
            stages.TURBINE,
        ]

    def test_first_model_specs_win(self, pipeline, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states

        pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        models = [m for m in store.tables[stages.MODEL].values() if m.name == "V90"]
        assert len(models) == 1
        assert models[0].capacity_kw == 2850

    def test_second_identical_run_is_idempotent(self, pipeline, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states
        records = load_turbines(turbines_csv, turbine_rows)

        pipeline.sync_turbines(records)
        snapshot = store.snapshot()
        results = pipeline.sync_turbines(records)

        assert store.snapshot() == snapshot
        assert all(result.inserted == 0 for result in results if result.stage != stages.TURBINE)
        assert results[-1].inserted == 4

    def test_turbines_are_replaced_not_appended(self, pipeline, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states
        pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows[:1]))

        assert len(store.turbines) == 1
        # reference kinds only grow
        assert len(store.tables[stages.COUNTY]) == 3

    def test_missing_state_stops_the_run(self, pipeline, store, turbines_csv, turbine_rows):
        with pytest.raises(StageError) as exc_info:
            pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        error = exc_info.value
        assert error.stage == stages.COUNTY
        assert error.key == ("CA", "Kern County")
        assert isinstance(error.cause, ReferentialIntegrityError)
        assert store.writes == []
        assert store.turbines == []

    def test_failure_aborts_remaining_stages(self, seeded_states, turbines_csv, turbine_rows):
        store = seeded_states

        def broken_upsert(kind, entity):
            raise RuntimeError("connection reset")

        store.upsert = broken_upsert
        pipeline = SyncPipeline(store, store)

        with pytest.raises(StageError) as exc_info:
            pipeline.sync_turbines(load_turbines(turbines_csv, turbine_rows))

        assert exc_info.value.stage == stages.PROJECT
        assert "connection reset" in str(exc_info.value)
        assert stages.TURBINE not in store.writes
        assert len(store.tables[stages.COUNTY]) == 3


class TestStageDeclarations:
    def test_pipeline_refuses_bad_order(self, store):
        bad = [
            Stage(stages.TURBINE, (stages.COUNTY,), WriteMode.REPLACE_ALL),
            Stage(stages.COUNTY, (), WriteMode.REFERENCE_INSERT),
        ]

        with pytest.raises(StageOrderError):
            SyncPipeline(store, store, stages=bad)
