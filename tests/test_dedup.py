"""Tests for natural-key deduplication."""

from dataclasses import replace
from decimal import Decimal

from etl.dedup import deduplicate_states, deduplicate_turbines, unique_by_key
from etl.models import (
    ConfidenceLevel,
    CountyKey,
    ModelKey,
    ProjectKey,
    StateRecord,
    StateType,
    TurbineRecord,
)


def make_turbine(**overrides) -> TurbineRecord:
    fields = dict(
        case_id=1,
        faa_ors="",
        faa_asn="",
        usgs_pr_id=None,
        eia_id=None,
        t_state="IA",
        t_county="Story County",
        t_fips=19169,
        p_name="Story County",
        p_year=2008,
        p_tnum=100,
        p_cap=150.0,
        t_manu="GE Wind",
        t_model="GE1.5-77",
        t_cap=1500,
        t_hh=80.0,
        t_rd=77.0,
        t_rsa=4656.6,
        t_ttlh=118.5,
        retrofit=False,
        retrofit_year=None,
        t_conf_atr=ConfidenceLevel.HIGH,
        t_conf_loc=ConfidenceLevel.HIGH,
        t_img_date="7/4/2016",
        t_img_srce="Digital Globe",
        xlong=-93.4,
        ylat=42.1,
    )
    fields.update(overrides)
    return TurbineRecord(**fields)


class TestUniqueByKey:
    def test_first_occurrence_wins_and_order_is_kept(self):
        records = [("b", 1), ("a", 2), ("b", 3), ("c", 4), ("a", 5)]

        unique, duplicates = unique_by_key(records, lambda r: r[0], lambda r: r)

        assert unique == [("b", 1), ("a", 2), ("c", 4)]
        assert duplicates == 2


class TestDeduplicateStates:
    def test_keeps_first_state_per_abbreviation(self):
        first = StateRecord(StateType.STATE, "California", "CA", population=1)
        second = StateRecord(StateType.STATE, "California", "CA", population=2)
        texas = StateRecord(StateType.STATE, "Texas", "TX")

        states, duplicates = deduplicate_states([first, texas, second])

        assert states == [first, texas]
        assert duplicates == 1


class TestDeduplicateTurbines:
    def test_model_specs_of_first_row_are_kept(self):
        records = [
            make_turbine(t_cap=1500, t_hh=80.0),
            make_turbine(t_cap=1600, t_hh=100.0),
        ]

        dataset = deduplicate_turbines(records)

        assert len(dataset.models) == 1
        assert dataset.models[0].capacity_kw == 1500
        assert dataset.models[0].hub_height == 80.0
        assert dataset.duplicates["model"] == 1

    def test_same_model_name_from_two_manufacturers(self):
        records = [make_turbine(t_manu="Vestas"), make_turbine(t_manu="Siemens")]

        dataset = deduplicate_turbines(records)

        assert [m.key for m in dataset.models] == [
            ModelKey("Vestas", "GE1.5-77"),
            ModelKey("Siemens", "GE1.5-77"),
        ]
        assert [m.name for m in dataset.manufacturers] == ["Vestas", "Siemens"]

    def test_blank_names_become_none(self):
        dataset = deduplicate_turbines([make_turbine(t_manu="", t_img_srce="")])

        assert dataset.manufacturers[0].name is None
        assert dataset.image_sources[0].name is None
        assert dataset.models[0].manufacturer is None
        assert dataset.turbines[0].image_source is None

    def test_project_capacity_compared_in_thousandths(self):
        records = [
            make_turbine(p_cap=136.8),
            make_turbine(p_cap=136.80000000001),
            make_turbine(p_cap=136.9),
            make_turbine(p_cap=None),
        ]

        dataset = deduplicate_turbines(records)

        assert [p.capacity_mw for p in dataset.projects] == [Decimal("136.800"), Decimal("136.900"), None]
        assert dataset.duplicates["project"] == 1

    def test_counties_are_keyed_by_state_and_name(self):
        records = [
            make_turbine(t_state="IA", t_county="Story County"),
            make_turbine(t_state="OH", t_county="Story County"),
            make_turbine(t_state="IA", t_county="Story County"),
        ]

        dataset = deduplicate_turbines(records)

        assert [c.key for c in dataset.counties] == [
            CountyKey("IA", "Story County"),
            CountyKey("OH", "Story County"),
        ]

    def test_every_turbine_is_kept_with_parent_keys(self):
        records = [make_turbine(case_id=1), replace(make_turbine(case_id=2), t_img_date="2016-07-04")]

        dataset = deduplicate_turbines(records)

        assert len(dataset.turbines) == 2
        first = dataset.turbines[0]
        assert first.county == CountyKey("IA", "Story County")
        assert first.project == ProjectKey("Story County", 100, 150000)
        assert first.model == ModelKey("GE Wind", "GE1.5-77")
        assert first.image_date == "2016-07-04"
        assert first.latitude == 42.1
        assert first.longitude == -93.4
        assert dataset.turbines[1].image_date is None

    def test_out_of_range_image_date_is_staged_as_absent(self):
        dataset = deduplicate_turbines([make_turbine(t_img_date="13/45/2012")])

        assert dataset.turbines[0].image_date is None

    def test_turbine_project_key_matches_project_entity(self):
        dataset = deduplicate_turbines([make_turbine(p_cap=0.1 + 0.2)])

        assert dataset.turbines[0].project == dataset.projects[0].key
