"""
Entity Loading into PostgreSQL

Idempotent writes for one entity at a time:
- reference insert: insert if the natural key is absent, never update
- update-or-insert: update by natural key, insert when nothing matched,
  inside one SERIALIZABLE transaction
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from psycopg2 import errors, sql

from db.connection import DatabaseConnection
from etl import stages
from etl.errors import ReferentialIntegrityError
from etl.models import Model, Project, StateRecord

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (errors.SerializationFailure, errors.DeadlockDetected)


class WriteOutcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ParentLookup:
    """Resolves the surrogate id of a parent row from a child's natural key."""

    column: str
    query: str
    params: Callable[[Any], Tuple]


@dataclass(frozen=True)
class TableSpec:
    table: str
    key_columns: Tuple[str, ...]
    attribute_columns: Tuple[str, ...]
    values: Callable[[Any], Dict[str, Any]]
    parent: Optional[ParentLookup] = None


def _state_values(state: StateRecord) -> Dict[str, Any]:
    return {
        "id": state.abbreviation,
        "name": state.name,
        "capital": state.capital,
        "population": state.population,
        "area_square_km": state.area_square_km,
        "state_type": state.state_type.value,
    }


def _model_values(model: Model) -> Dict[str, Any]:
    return {
        "name": model.name,
        "capacity_kw": model.capacity_kw,
        "hub_height": model.hub_height,
        "rotor_diameter": model.rotor_diameter,
        "rotor_swept_area": model.rotor_swept_area,
        "total_height_to_tip": model.total_height_to_tip,
    }


def _project_values(project: Project) -> Dict[str, Any]:
    return {
        "name": project.name,
        "num_turbines": project.num_turbines,
        "capacity_mw": project.capacity_mw,
    }


TABLES: Dict[str, TableSpec] = {
    stages.STATE: TableSpec(
        table="state",
        key_columns=("id",),
        attribute_columns=("name", "capital", "population", "area_square_km", "state_type"),
        values=_state_values,
    ),
    stages.COUNTY: TableSpec(
        table="county",
        key_columns=("state_id", "name"),
        attribute_columns=(),
        values=lambda county: {"name": county.name},
        parent=ParentLookup(
            column="state_id",
            query="SELECT id FROM state WHERE id = %s;",
            params=lambda county: (county.state_id,),
        ),
    ),
    stages.MANUFACTURER: TableSpec(
        table="manufacturer",
        key_columns=("name",),
        attribute_columns=(),
        values=lambda manufacturer: {"name": manufacturer.name},
    ),
    stages.MODEL: TableSpec(
        table="model",
        key_columns=("manufacturer_id", "name"),
        attribute_columns=(),
        values=_model_values,
        parent=ParentLookup(
            column="manufacturer_id",
            query="SELECT id FROM manufacturer WHERE name IS NOT DISTINCT FROM %s;",
            params=lambda model: (model.manufacturer,),
        ),
    ),
    stages.IMAGE_SOURCE: TableSpec(
        table="image_source",
        key_columns=("name",),
        attribute_columns=(),
        values=lambda image_source: {"name": image_source.name},
    ),
    stages.PROJECT: TableSpec(
        table="project",
        key_columns=("name", "num_turbines", "capacity_mw"),
        attribute_columns=(),
        values=_project_values,
    ),
}


def build_insert(spec: TableSpec, columns) -> sql.Composed:
    """INSERT that does nothing when a row with the same unique key exists."""
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values}) ON CONFLICT DO NOTHING;").format(
        table=sql.Identifier(spec.table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
    )


def build_update(spec: TableSpec) -> sql.Composed:
    """UPDATE by natural key that only touches rows whose attributes differ."""
    attributes = [sql.Identifier(c) for c in spec.attribute_columns]
    return sql.SQL(
        "UPDATE {table} SET {assignments} WHERE {key_match} "
        "AND ROW({attributes}) IS DISTINCT FROM ROW({placeholders});"
    ).format(
        table=sql.Identifier(spec.table),
        assignments=sql.SQL(", ").join(
            sql.SQL("{} = %s").format(column) for column in attributes
        ),
        key_match=sql.SQL(" AND ").join(
            sql.SQL("{} IS NOT DISTINCT FROM %s").format(sql.Identifier(c)) for c in spec.key_columns
        ),
        attributes=sql.SQL(", ").join(attributes),
        placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in attributes),
    )


class EntityWriter:
    """
    Writes entities into PostgreSQL one at a time.

    Reference kinds (county, manufacturer, model, image source) only grow;
    mutable kinds (state, project) are brought up to date by natural key.
    """

    def __init__(self, connection: DatabaseConnection, max_retries: int = 3):
        """
        Initialize writer.

        Args:
            connection: Open database connection used for every write
            max_retries: Retries for an upsert aborted by a serialization conflict
        """
        self.connection = connection
        self.max_retries = max_retries

    def insert_if_absent(self, kind: str, entity: Any) -> WriteOutcome:
        """
        Insert a reference entity unless its natural key is already stored.

        The existence check and the insert are one statement, so two runs
        inserting the same new key cannot create a duplicate.

        Raises:
            ReferentialIntegrityError: If the parent row does not exist
        """
        spec = TABLES[kind]
        with self.connection.transaction() as cursor:
            values = self._resolve_values(cursor, spec, entity)
            columns = list(values)
            cursor.execute(build_insert(spec, columns), [values[c] for c in columns])
            inserted = cursor.rowcount == 1

        return WriteOutcome.INSERTED if inserted else WriteOutcome.UNCHANGED

    def upsert(self, kind: str, entity: Any) -> WriteOutcome:
        """
        Update the row with the entity's natural key, or insert it.

        Runs in a SERIALIZABLE transaction and is retried when PostgreSQL
        aborts it because of a concurrent writer.
        """
        spec = TABLES[kind]
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._upsert_once(spec, entity)
            except RETRYABLE_ERRORS as e:
                if attempt > self.max_retries:
                    logger.error(f"Giving up on {spec.table} upsert after {attempt} attempts: {e}")
                    raise
                logger.warning(f"Retrying {spec.table} upsert (attempt {attempt}): {e}")

    def _upsert_once(self, spec: TableSpec, entity: Any) -> WriteOutcome:
        with self.connection.transaction(serializable=True) as cursor:
            values = self._resolve_values(cursor, spec, entity)

            if spec.attribute_columns:
                attributes = [values[c] for c in spec.attribute_columns]
                keys = [values[c] for c in spec.key_columns]
                cursor.execute(build_update(spec), attributes + keys + attributes)
                if cursor.rowcount > 0:
                    return WriteOutcome.UPDATED

            columns = list(values)
            cursor.execute(build_insert(spec, columns), [values[c] for c in columns])
            if cursor.rowcount == 1:
                return WriteOutcome.INSERTED
            return WriteOutcome.UNCHANGED

    def _resolve_values(self, cursor, spec: TableSpec, entity: Any) -> Dict[str, Any]:
        values = spec.values(entity)
        if spec.parent is None:
            return values

        cursor.execute(spec.parent.query, spec.parent.params(entity))
        row = cursor.fetchone()
        if row is None:
            raise ReferentialIntegrityError(
                f"No parent row for {spec.table} {entity!r} ({spec.parent.column} lookup failed)"
            )
        return {spec.parent.column: row[0], **values}

