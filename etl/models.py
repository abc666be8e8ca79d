"""
Typed Records and Entities

Typed input rows produced by the row normalizer, the entities the deduplicator
derives from them, and one dedicated key type per entity kind.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional

from etl.errors import UnknownConfidenceLevelError, UnknownStateTypeError

SQUARE_MILES_TO_KM = 2.58999


class StateType(Enum):
    """Kind of US region, stored as a single-letter code."""

    STATE = "S"
    TERRITORY = "T"
    FEDERAL_CAPITAL = "F"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "StateType":
        """
        Map a code to a StateType using its first letter, case-insensitively.

        Raises:
            UnknownStateTypeError: If the code is empty or not S, T or F
        """
        if not code:
            raise UnknownStateTypeError(code)
        try:
            return cls(code.strip()[:1].upper())
        except ValueError:
            raise UnknownStateTypeError(code) from None


class ConfidenceLevel(Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def from_code(cls, code: Optional[int]) -> "ConfidenceLevel":
        try:
            return cls(code)
        except ValueError:
            raise UnknownConfidenceLevelError(code) from None


class CountyKey(NamedTuple):
    state_id: str
    name: str


class ModelKey(NamedTuple):
    manufacturer: Optional[str]
    name: str


class ProjectKey(NamedTuple):
    """Project identity with capacity held as thousandths of a megawatt."""

    name: str
    num_turbines: int
    capacity_milli_mw: Optional[int]


@dataclass(frozen=True)
class StateRecord:
    """One row of the states file; also the State entity itself."""

    state_type: StateType
    name: str
    abbreviation: str
    capital: Optional[str] = None
    population: Optional[int] = None
    area: Optional[int] = None

    @property
    def key(self) -> str:
        return self.abbreviation

    @property
    def area_square_km(self) -> Optional[int]:
        return area_in_square_km(self.area)


@dataclass(frozen=True)
class TurbineRecord:
    """One row of the USWTDB turbines file."""

    case_id: int
    faa_ors: str
    faa_asn: str
    usgs_pr_id: Optional[int]
    eia_id: Optional[int]
    t_state: str
    t_county: str
    t_fips: int
    p_name: str
    p_year: Optional[int]
    p_tnum: int
    p_cap: Optional[float]
    t_manu: str
    t_model: str
    t_cap: Optional[int]
    t_hh: Optional[float]
    t_rd: Optional[float]
    t_rsa: Optional[float]
    t_ttlh: Optional[float]
    retrofit: bool
    retrofit_year: Optional[int]
    t_conf_atr: ConfidenceLevel
    t_conf_loc: ConfidenceLevel
    t_img_date: str
    t_img_srce: str
    xlong: float
    ylat: float


@dataclass(frozen=True)
class County:
    state_id: str
    name: str

    @property
    def key(self) -> CountyKey:
        return CountyKey(self.state_id, self.name)


@dataclass(frozen=True)
class Manufacturer:
    # None is the blank manufacturer
    name: Optional[str]

    @property
    def key(self) -> Optional[str]:
        return self.name


@dataclass(frozen=True)
class Model:
    manufacturer: Optional[str]
    name: str
    capacity_kw: Optional[int] = None
    hub_height: Optional[float] = None
    rotor_diameter: Optional[float] = None
    rotor_swept_area: Optional[float] = None
    total_height_to_tip: Optional[float] = None

    @property
    def key(self) -> ModelKey:
        return ModelKey(self.manufacturer, self.name)


@dataclass(frozen=True)
class ImageSource:
    name: Optional[str]

    @property
    def key(self) -> Optional[str]:
        return self.name


@dataclass(frozen=True)
class Project:
    name: str
    num_turbines: int
    capacity_mw: Optional[Decimal] = None

    @property
    def key(self) -> ProjectKey:
        return ProjectKey(self.name, self.num_turbines, decimal_to_milli(self.capacity_mw))


@dataclass(frozen=True)
class Turbine:
    """A turbine row, referring to its parents by natural key."""

    county: CountyKey
    project: ProjectKey
    model: ModelKey
    image_source: Optional[str]
    retrofit: bool
    retrofit_year: Optional[int]
    attributes_confidence: ConfidenceLevel
    location_confidence: ConfidenceLevel
    image_date: Optional[str]
    latitude: float
    longitude: float


def area_in_square_km(square_miles: Optional[int]) -> Optional[int]:
    """Convert square miles to whole square kilometers, truncating."""
    if square_miles is None:
        return None
    return int(square_miles * SQUARE_MILES_TO_KM)


def convert_image_date(value: Optional[str]) -> Optional[str]:
    """
    Convert an M/D/Y date to YYYY-MM-DD.

    Anything that does not split into exactly three numeric parts on "/",
    or that names no real calendar day, yields None.
    """
    if not value:
        return None
    parts = value.split("/")
    if len(parts) != 3:
        return None
    try:
        month, day, year = (int(part) for part in parts)
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def float_to_milli(value: Optional[float]) -> Optional[int]:
    """Map a float to thousandths, rounded to the nearest integer."""
    if value is None:
        return None
    return int(round(value * 1000))


def milli_to_decimal(value: Optional[int]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value).scaleb(-3)


def decimal_to_milli(value: Optional[Decimal]) -> Optional[int]:
    if value is None:
        return None
    return int((value * 1000).to_integral_value())


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return value
