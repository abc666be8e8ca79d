"""
Read-Only Repository

Accessors over the synchronized tables for consumers such as a query API.
The sync pipeline never calls this module.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, TypeVar

import psycopg2

from db.connection import DatabaseConnection
from etl.errors import LowLevelError, NotFoundError
from etl.models import ConfidenceLevel, StateType

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ImageSourceRow:
    id: int
    name: Optional[str]


@dataclass(frozen=True)
class StateRow:
    id: str
    name: str
    capital: Optional[str]
    population: Optional[int]
    area_square_km: Optional[int]
    state_type: StateType


@dataclass(frozen=True)
class CountyRow:
    id: int
    state_id: str
    name: str


@dataclass(frozen=True)
class ManufacturerRow:
    id: int
    name: Optional[str]


@dataclass(frozen=True)
class ProjectRow:
    id: int
    name: str
    num_turbines: Optional[int]
    capacity_mw: Optional[Decimal]


@dataclass(frozen=True)
class ModelRow:
    id: int
    manufacturer_id: int
    name: str
    capacity_kw: Optional[int]
    hub_height: Optional[Decimal]
    rotor_diameter: Optional[Decimal]
    rotor_swept_area: Optional[Decimal]
    total_height_to_tip: Optional[Decimal]


@dataclass(frozen=True)
class TurbineRow:
    id: int
    county_id: int
    project_id: int
    model_id: int
    image_source_id: int
    retrofit: bool
    retrofit_year: Optional[int]
    attributes_confidence_level: ConfidenceLevel
    location_confidence_level: ConfidenceLevel
    image_date: Optional[str]
    latitude: Decimal
    longitude: Decimal


def _state_from_row(row: Sequence) -> StateRow:
    return StateRow(
        id=row[0],
        name=row[1],
        capital=row[2],
        population=row[3],
        area_square_km=row[4],
        state_type=StateType.from_code(row[5]),
    )


def _turbine_from_row(row: Sequence) -> TurbineRow:
    image_date: Optional[date] = row[9]
    return TurbineRow(
        id=row[0],
        county_id=row[1],
        project_id=row[2],
        model_id=row[3],
        image_source_id=row[4],
        retrofit=row[5],
        retrofit_year=row[6],
        attributes_confidence_level=ConfidenceLevel.from_code(row[7]),
        location_confidence_level=ConfidenceLevel.from_code(row[8]),
        image_date=image_date.strftime("%Y-%m-%d") if image_date else None,
        latitude=row[10],
        longitude=row[11],
    )


class Repository:
    """
    Read access to the synchronized data, plus the image source name correction.

    Every list is ordered by id. Driver failures surface as LowLevelError and
    unknown stored codes as InvalidEnumValueError subclasses.
    """

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    def _fetch(self, query: str, params: Optional[Sequence] = None) -> list:
        try:
            return self.connection.execute_query(query, params)
        except psycopg2.Error as e:
            logger.error(f"Repository query failed: {e}")
            raise LowLevelError(str(e)) from e

    def _fetch_all(self, query: str, build: Callable[[Sequence], T]) -> List[T]:
        return [build(row) for row in self._fetch(query)]

    def get_all_image_sources(self) -> List[ImageSourceRow]:
        return self._fetch_all(
            "SELECT id, name FROM image_source ORDER BY id;",
            lambda row: ImageSourceRow(*row),
        )

    def get_image_source(self, image_source_id: int) -> ImageSourceRow:
        """
        Get the image source with the given id.

        Raises:
            NotFoundError: If no image source has that id
        """
        rows = self._fetch("SELECT id, name FROM image_source WHERE id = %s;", (image_source_id,))
        if not rows:
            raise NotFoundError(f"Image source {image_source_id} not found")
        return ImageSourceRow(*rows[0])

    def update_image_source(self, image_source_id: int, name: str) -> int:
        """
        Rename an image source.

        Returns:
            Number of rows updated (always 1)

        Raises:
            NotFoundError: If no image source has that id
            LowLevelError: If the update fails or touches more than one row
        """
        try:
            updated = self.connection.execute_update(
                "UPDATE image_source SET name = %s WHERE id = %s;",
                (name, image_source_id),
            )
        except psycopg2.Error as e:
            logger.error(f"Image source update failed: {e}")
            raise LowLevelError(str(e)) from e

        if updated == 0:
            raise NotFoundError(f"Image source {image_source_id} not found")
        if updated > 1:
            raise LowLevelError(f"Unexpected row count {updated}")
        logger.info(f"Renamed image source {image_source_id} to {name!r}")
        return updated

    def get_all_states(self) -> List[StateRow]:
        return self._fetch_all(
            "SELECT id, name, capital, population, area_square_km, state_type FROM state ORDER BY id;",
            _state_from_row,
        )

    def get_all_counties(self) -> List[CountyRow]:
        return self._fetch_all(
            "SELECT id, state_id, name FROM county ORDER BY id;",
            lambda row: CountyRow(*row),
        )

    def get_all_projects(self) -> List[ProjectRow]:
        return self._fetch_all(
            "SELECT id, name, num_turbines, capacity_mw FROM project ORDER BY id;",
            lambda row: ProjectRow(*row),
        )

    def get_all_manufacturers(self) -> List[ManufacturerRow]:
        return self._fetch_all(
            "SELECT id, name FROM manufacturer ORDER BY id;",
            lambda row: ManufacturerRow(*row),
        )

    def get_all_models(self) -> List[ModelRow]:
        return self._fetch_all(
            "SELECT id, manufacturer_id, name, capacity_kw, hub_height, rotor_diameter, "
            "rotor_swept_area, total_height_to_tip FROM model ORDER BY id;",
            lambda row: ModelRow(*row),
        )

    def get_all_turbines(self) -> List[TurbineRow]:
        return self._fetch_all(
            "SELECT id, county_id, project_id, model_id, image_source_id, retrofit, retrofit_year, "
            "attributes_confidence_level, location_confidence_level, image_date, latitude, longitude "
            "FROM turbine ORDER BY id;",
            _turbine_from_row,
        )
