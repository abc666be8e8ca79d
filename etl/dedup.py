"""
Entity Deduplication

Derives one representative entity per natural key from the typed input rows.
The first occurrence of a key wins and input order is preserved; later
duplicates are dropped and counted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Tuple, TypeVar

from etl.models import (
    County,
    CountyKey,
    ImageSource,
    Manufacturer,
    Model,
    ModelKey,
    Project,
    ProjectKey,
    StateRecord,
    Turbine,
    TurbineRecord,
    blank_to_none,
    convert_image_date,
    float_to_milli,
    milli_to_decimal,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E")


def county_key(record: TurbineRecord) -> CountyKey:
    return CountyKey(record.t_state, record.t_county)


def manufacturer_key(record: TurbineRecord) -> Any:
    return blank_to_none(record.t_manu)


def model_key(record: TurbineRecord) -> ModelKey:
    # numeric specs are not part of the key
    return ModelKey(blank_to_none(record.t_manu), record.t_model)


def image_source_key(record: TurbineRecord) -> Any:
    return blank_to_none(record.t_img_srce)


def project_key(record: TurbineRecord) -> ProjectKey:
    return ProjectKey(record.p_name, record.p_tnum, float_to_milli(record.p_cap))


def unique_by_key(
    records: Iterable[T],
    key: Callable[[T], Hashable],
    build: Callable[[T], E],
) -> Tuple[List[E], int]:
    """
    Keep the first record seen for each key, in input order.

    Args:
        records: Ordered input records
        key: Natural key extraction function
        build: Builds the entity from the winning record

    Returns:
        Tuple of (unique entities, number of duplicates dropped)
    """
    seen: Dict[Hashable, E] = {}
    duplicates = 0
    for record in records:
        k = key(record)
        if k in seen:
            duplicates += 1
            continue
        seen[k] = build(record)
    return list(seen.values()), duplicates


@dataclass
class TurbineDataset:
    """Unique entities of each kind derived from one turbines file."""

    counties: List[County] = field(default_factory=list)
    manufacturers: List[Manufacturer] = field(default_factory=list)
    models: List[Model] = field(default_factory=list)
    image_sources: List[ImageSource] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    turbines: List[Turbine] = field(default_factory=list)
    duplicates: Dict[str, int] = field(default_factory=dict)


def deduplicate_states(records: List[StateRecord]) -> Tuple[List[StateRecord], int]:
    """Remove duplicate states by abbreviation (keep first occurrence)."""
    states, duplicates = unique_by_key(records, lambda r: r.abbreviation, lambda r: r)
    if duplicates:
        logger.warning(f"Removed {duplicates} duplicate state records by abbreviation")
    return states, duplicates


def deduplicate_turbines(records: List[TurbineRecord]) -> TurbineDataset:
    """
    Derive the unique parent entities and the turbine rows of a turbines file.

    Args:
        records: Typed turbine rows in file order

    Returns:
        TurbineDataset with every parent kind deduplicated
    """
    dataset = TurbineDataset()

    dataset.counties, dataset.duplicates["county"] = unique_by_key(
        records, county_key, lambda r: County(r.t_state, r.t_county)
    )
    dataset.manufacturers, dataset.duplicates["manufacturer"] = unique_by_key(
        records, manufacturer_key, lambda r: Manufacturer(blank_to_none(r.t_manu))
    )
    dataset.models, dataset.duplicates["model"] = unique_by_key(records, model_key, _build_model)
    dataset.image_sources, dataset.duplicates["image_source"] = unique_by_key(
        records, image_source_key, lambda r: ImageSource(blank_to_none(r.t_img_srce))
    )

    milli_projects, dataset.duplicates["project"] = unique_by_key(records, project_key, project_key)
    dataset.projects = [
        Project(k.name, k.num_turbines, milli_to_decimal(k.capacity_milli_mw))
        for k in milli_projects
    ]

    dataset.turbines = [_build_turbine(record) for record in records]

    logger.info(
        f"Derived {len(dataset.counties)} counties, {len(dataset.manufacturers)} manufacturers, "
        f"{len(dataset.models)} models, {len(dataset.image_sources)} image sources, "
        f"{len(dataset.projects)} projects from {len(records)} turbine rows"
    )
    return dataset


def _build_model(record: TurbineRecord) -> Model:
    return Model(
        manufacturer=blank_to_none(record.t_manu),
        name=record.t_model,
        capacity_kw=record.t_cap,
        hub_height=record.t_hh,
        rotor_diameter=record.t_rd,
        rotor_swept_area=record.t_rsa,
        total_height_to_tip=record.t_ttlh,
    )


def _build_turbine(record: TurbineRecord) -> Turbine:
    return Turbine(
        county=county_key(record),
        project=project_key(record),
        model=model_key(record),
        image_source=image_source_key(record),
        retrofit=record.retrofit,
        retrofit_year=record.retrofit_year,
        attributes_confidence=record.t_conf_atr,
        location_confidence=record.t_conf_loc,
        image_date=convert_image_date(record.t_img_date),
        latitude=record.ylat,
        longitude=record.xlong,
    )
