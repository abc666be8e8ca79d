"""
Sync Stage Declarations

The pipeline writes entity kinds in the order declared here. Every stage names
the kinds it references, so the order can be checked instead of trusted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from etl.errors import StageOrderError


class WriteMode(Enum):
    UPSERT_AND_PRUNE = "upsert_and_prune"
    REFERENCE_INSERT = "reference_insert"
    UPSERT = "upsert"
    REPLACE_ALL = "replace_all"


@dataclass(frozen=True)
class Stage:
    kind: str
    parents: Tuple[str, ...]
    mode: WriteMode


STATE = "state"
COUNTY = "county"
MANUFACTURER = "manufacturer"
MODEL = "model"
IMAGE_SOURCE = "image_source"
PROJECT = "project"
TURBINE = "turbine"

STAGES: List[Stage] = [
    Stage(STATE, (), WriteMode.UPSERT_AND_PRUNE),
    Stage(COUNTY, (STATE,), WriteMode.REFERENCE_INSERT),
    Stage(MANUFACTURER, (), WriteMode.REFERENCE_INSERT),
    Stage(MODEL, (MANUFACTURER,), WriteMode.REFERENCE_INSERT),
    Stage(IMAGE_SOURCE, (), WriteMode.REFERENCE_INSERT),
    Stage(PROJECT, (), WriteMode.UPSERT),
    Stage(TURBINE, (COUNTY, PROJECT, MODEL, IMAGE_SOURCE), WriteMode.REPLACE_ALL),
]


def validate_stage_order(stages: Sequence[Stage]) -> None:
    """
    Check that every stage's parents are declared by an earlier stage.

    Raises:
        StageOrderError: If a kind repeats or a parent is not declared earlier
    """
    declared = set()
    for position, stage in enumerate(stages, 1):
        if stage.kind in declared:
            raise StageOrderError(f"Stage {position} redeclares '{stage.kind}'")
        missing = [parent for parent in stage.parents if parent not in declared]
        if missing:
            raise StageOrderError(
                f"Stage {position} '{stage.kind}' is declared before its parents: {', '.join(missing)}"
            )
        declared.add(stage.kind)


def stage_for(kind: str, stages: Sequence[Stage] = STAGES) -> Stage:
    for stage in stages:
        if stage.kind == kind:
            return stage
    raise KeyError(kind)
