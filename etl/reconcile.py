"""
Stored State Reconciliation

Makes the incoming dataset authoritative after the upsert stages:
- states absent from the incoming file are deleted
- the turbine set is swapped for the incoming one in a single transaction
"""

import logging
from typing import Iterable, List

from psycopg2.extras import execute_values

from db.connection import DatabaseConnection
from etl.errors import ReferentialIntegrityError
from etl.models import Turbine, milli_to_decimal

logger = logging.getLogger(__name__)

CREATE_STAGING = """
    CREATE TEMP TABLE turbine_staging (
        position                     INTEGER        NOT NULL,
        state_id                     VARCHAR(10)    NOT NULL,
        county_name                  VARCHAR(100)   NOT NULL,
        project_name                 VARCHAR(200)   NOT NULL,
        project_num_turbines         SMALLINT       NOT NULL,
        project_capacity_mw          NUMERIC(10, 3),
        manufacturer_name            VARCHAR(100),
        model_name                   VARCHAR(100)   NOT NULL,
        image_source_name            VARCHAR(100),
        retrofit                     BOOLEAN        NOT NULL,
        retrofit_year                SMALLINT,
        attributes_confidence_level  SMALLINT       NOT NULL,
        location_confidence_level    SMALLINT       NOT NULL,
        image_date                   DATE,
        latitude                     NUMERIC(9, 6)  NOT NULL,
        longitude                    NUMERIC(9, 6)  NOT NULL
    ) ON COMMIT DROP;
"""

INSERT_STAGING = """
    INSERT INTO turbine_staging (
        position, state_id, county_name,
        project_name, project_num_turbines, project_capacity_mw,
        manufacturer_name, model_name, image_source_name,
        retrofit, retrofit_year, attributes_confidence_level, location_confidence_level,
        image_date, latitude, longitude
    ) VALUES %s;
"""

SWAP_TURBINES = """
    INSERT INTO turbine (
        county_id, project_id, model_id, image_source_id,
        retrofit, retrofit_year, attributes_confidence_level, location_confidence_level,
        image_date, latitude, longitude
    )
    SELECT c.id, p.id, m.id, i.id,
           s.retrofit, s.retrofit_year, s.attributes_confidence_level, s.location_confidence_level,
           s.image_date, s.latitude, s.longitude
    FROM turbine_staging s
    JOIN county c
      ON c.state_id = s.state_id AND c.name = s.county_name
    JOIN project p
      ON p.name = s.project_name
     AND p.num_turbines = s.project_num_turbines
     AND p.capacity_mw IS NOT DISTINCT FROM s.project_capacity_mw
    JOIN manufacturer mf
      ON mf.name IS NOT DISTINCT FROM s.manufacturer_name
    JOIN model m
      ON m.manufacturer_id = mf.id AND m.name = s.model_name
    JOIN image_source i
      ON i.name IS NOT DISTINCT FROM s.image_source_name
    ORDER BY s.position;
"""


def staging_row(position: int, turbine: Turbine) -> tuple:
    return (
        position,
        turbine.county.state_id,
        turbine.county.name,
        turbine.project.name,
        turbine.project.num_turbines,
        milli_to_decimal(turbine.project.capacity_milli_mw),
        turbine.model.manufacturer,
        turbine.model.name,
        turbine.image_source,
        turbine.retrofit,
        turbine.retrofit_year,
        turbine.attributes_confidence.value,
        turbine.location_confidence.value,
        turbine.image_date,
        turbine.latitude,
        turbine.longitude,
    )


class Reconciler:
    """Deletes or replaces stored rows so they match the incoming dataset."""

    def __init__(self, connection: DatabaseConnection, page_size: int = 1000):
        self.connection = connection
        self.page_size = page_size

    def prune_states(self, keep: Iterable[str]) -> int:
        """
        Delete every state whose abbreviation is not in keep.

        The keep set travels as a single array parameter. An empty keep set
        deletes every state.

        Returns:
            Number of states deleted
        """
        keep_list: List[str] = list(keep)
        deleted = self.connection.execute_update(
            "DELETE FROM state WHERE NOT (id = ANY(%s));",
            (keep_list,),
        )
        logger.info(f"Deleted {deleted} extraneous states (kept {len(keep_list)})")
        return deleted

    def replace_turbines(self, turbines: List[Turbine]) -> int:
        """
        Replace the whole turbine table with the incoming rows.

        Rows are first written to a temporary staging table, then swapped in
        with one DELETE and one INSERT ... SELECT in the same transaction, so
        readers see either the old set or the new one.

        Returns:
            Number of turbines inserted

        Raises:
            ReferentialIntegrityError: If a staged row has no matching parent
        """
        with self.connection.transaction() as cursor:
            cursor.execute(CREATE_STAGING)
            execute_values(
                cursor,
                INSERT_STAGING,
                [staging_row(position, turbine) for position, turbine in enumerate(turbines)],
                page_size=self.page_size,
            )
            cursor.execute("DELETE FROM turbine;")
            removed = cursor.rowcount
            cursor.execute(SWAP_TURBINES)
            inserted = cursor.rowcount

            if inserted != len(turbines):
                raise ReferentialIntegrityError(
                    f"{len(turbines) - inserted} of {len(turbines)} turbines reference missing parent rows"
                )

        logger.info(f"Replaced {removed} stored turbines with {inserted} incoming turbines")
        return inserted

    def count_unreferenced_projects(self) -> int:
        """Count projects that no turbine refers to."""
        rows = self.connection.execute_query(
            "SELECT COUNT(*) FROM project p "
            "WHERE NOT EXISTS (SELECT 1 FROM turbine t WHERE t.project_id = p.id);"
        )
        return rows[0][0]
