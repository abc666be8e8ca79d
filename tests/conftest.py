"""Shared fixtures: an in-memory store and CSV file builders."""

import csv
from unittest.mock import MagicMock

import pytest

from etl import stages
from etl.errors import ReferentialIntegrityError
from etl.extract import STATE_COLUMNS, TURBINE_COLUMNS
from etl.load import WriteOutcome
from etl.pipeline import SyncPipeline


class InMemoryStore:
    """
    Stands in for both EntityWriter and Reconciler.

    Rows are kept per kind by natural key, and every write checks that the
    rows it references already exist.
    """

    def __init__(self):
        self.tables = {
            stages.STATE: {},
            stages.COUNTY: {},
            stages.MANUFACTURER: {},
            stages.MODEL: {},
            stages.IMAGE_SOURCE: {},
            stages.PROJECT: {},
        }
        self.turbines = []
        self.writes = []

    def insert_if_absent(self, kind, entity):
        self._check_parents(kind, entity)
        self.writes.append(kind)
        table = self.tables[kind]
        if entity.key in table:
            return WriteOutcome.UNCHANGED
        table[entity.key] = entity
        return WriteOutcome.INSERTED

    def upsert(self, kind, entity):
        self.writes.append(kind)
        table = self.tables[kind]
        current = table.get(entity.key)
        table[entity.key] = entity
        if current is None:
            return WriteOutcome.INSERTED
        if current == entity:
            return WriteOutcome.UNCHANGED
        return WriteOutcome.UPDATED

    def prune_states(self, keep):
        keep = set(keep)
        states = self.tables[stages.STATE]
        stale = [key for key in states if key not in keep]
        for key in stale:
            del states[key]
        return len(stale)

    def replace_turbines(self, turbines):
        self.writes.append(stages.TURBINE)
        for turbine in turbines:
            self._require(stages.COUNTY, turbine.county)
            self._require(stages.PROJECT, turbine.project)
            self._require(stages.MODEL, turbine.model)
            self._require(stages.IMAGE_SOURCE, turbine.image_source)
        self.turbines = list(turbines)
        return len(self.turbines)

    def count_unreferenced_projects(self):
        referenced = {turbine.project for turbine in self.turbines}
        return len([key for key in self.tables[stages.PROJECT] if key not in referenced])

    def _check_parents(self, kind, entity):
        if kind == stages.COUNTY:
            self._require(stages.STATE, entity.state_id)
        elif kind == stages.MODEL:
            self._require(stages.MANUFACTURER, entity.manufacturer)

    def _require(self, kind, key):
        if key not in self.tables[kind]:
            raise ReferentialIntegrityError(f"missing {kind} {key!r}")

    def snapshot(self):
        return (
            {kind: dict(rows) for kind, rows in self.tables.items()},
            list(self.turbines),
        )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def pipeline(store):
    return SyncPipeline(store, store)


def state_row(abbreviation="CA", **overrides):
    row = {
        "StateType": "State",
        "Name": f"State {abbreviation}",
        "Abbreviation": abbreviation,
        "Capital": "Capital City",
        "Population": "1000000",
        "Area": "1000",
    }
    row.update(overrides)
    return row


def turbine_row(**overrides):
    row = {
        "case_id": "3000001",
        "faa_ors": "06-020309",
        "faa_asn": "2014-WTW-2712-OE",
        "usgs_pr_id": "",
        "eia_id": "52161",
        "t_state": "CA",
        "t_county": "Kern County",
        "t_fips": "6029",
        "p_name": "Alta Wind X",
        "p_year": "2014",
        "p_tnum": "48",
        "p_cap": "136.8",
        "t_manu": "Vestas",
        "t_model": "V90",
        "t_cap": "2850",
        "t_hh": "80",
        "t_rd": "90",
        "t_rsa": "6361.73",
        "t_ttlh": "125",
        "retrofit": "0",
        "retrofit_year": "",
        "t_conf_atr": "3",
        "t_conf_loc": "3",
        "t_img_date": "1/1/2012",
        "t_img_srce": "NAIP",
        "xlong": "-118.364197",
        "ylat": "35.077644",
    }
    row.update(overrides)
    return row


def write_csv(path, columns, rows):
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
    return path


@pytest.fixture
def states_csv(tmp_path):
    def build(rows, name="states.csv"):
        return write_csv(tmp_path / name, STATE_COLUMNS, rows)

    return build


@pytest.fixture
def turbines_csv(tmp_path):
    def build(rows, name="turbines.csv"):
        return write_csv(tmp_path / name, TURBINE_COLUMNS, rows)

    return build


def scripted_cursor(steps, fetchone=None):
    """
    Build a cursor whose execute() walks through steps.

    An int step becomes cursor.rowcount; an exception step is raised.
    """
    cursor = MagicMock()
    remaining = iter(steps)

    def execute(query, params=None):
        step = next(remaining)
        if isinstance(step, Exception):
            raise step
        cursor.rowcount = step

    cursor.execute.side_effect = execute
    cursor.fetchone.return_value = fetchone
    return cursor


def mock_connection(cursor):
    connection = MagicMock()
    connection.transaction.return_value.__enter__.return_value = cursor
    connection.transaction.return_value.__exit__.return_value = False
    return connection
