"""
Dependency-Ordered Sync Pipeline

Runs the declared stages in order, each one over the deduplicated entities of
its kind, so that every parent row is committed before its children are
written. The first failure stops the run.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from etl import stages as stage_kinds
from etl.dedup import deduplicate_states, deduplicate_turbines
from etl.errors import StageError
from etl.load import WriteOutcome
from etl.models import StateRecord, TurbineRecord
from etl.stages import STAGES, Stage, WriteMode, validate_stage_order

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Row counts and timing for one stage."""

    stage: str
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    duplicates: int = 0
    duration_seconds: float = 0.0

    def record(self, outcome: WriteOutcome) -> None:
        if outcome is WriteOutcome.INSERTED:
            self.inserted += 1
        elif outcome is WriteOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1


class SyncPipeline:
    """
    Synchronizes typed records into the store.

    The writer performs reference inserts and upserts; the reconciler prunes
    states and swaps the turbine set. Neither is opened or closed here.
    """

    def __init__(self, writer, reconciler, stages: Optional[Sequence[Stage]] = None):
        """
        Initialize pipeline.

        Args:
            writer: Object with insert_if_absent(kind, entity) and upsert(kind, entity)
            reconciler: Object with prune_states, replace_turbines and
                count_unreferenced_projects
            stages: Stage declarations (defaults to STAGES)

        Raises:
            StageOrderError: If the stages are not in dependency order
        """
        self.stages = list(stages if stages is not None else STAGES)
        validate_stage_order(self.stages)
        self.writer = writer
        self.reconciler = reconciler

    def sync_states(self, records: List[StateRecord]) -> List[StageResult]:
        """Upsert every incoming state, then delete the states not in the file."""
        states, duplicates = deduplicate_states(records)
        return self._run_stages({stage_kinds.STATE: states}, {stage_kinds.STATE: duplicates})

    def sync_turbines(self, records: List[TurbineRecord]) -> List[StageResult]:
        """Write every parent kind of the turbines file, then replace the turbines."""
        dataset = deduplicate_turbines(records)
        entities = {
            stage_kinds.COUNTY: dataset.counties,
            stage_kinds.MANUFACTURER: dataset.manufacturers,
            stage_kinds.MODEL: dataset.models,
            stage_kinds.IMAGE_SOURCE: dataset.image_sources,
            stage_kinds.PROJECT: dataset.projects,
            stage_kinds.TURBINE: dataset.turbines,
        }
        results = self._run_stages(entities, dataset.duplicates)

        # stale projects are reported, not pruned
        unreferenced = self.reconciler.count_unreferenced_projects()
        if unreferenced:
            logger.warning(f"{unreferenced} stored projects are no longer referenced by any turbine")

        return results

    def _run_stages(self, entities: Dict[str, List[Any]], duplicates: Dict[str, int]) -> List[StageResult]:
        results = []
        for stage in self.stages:
            if stage.kind not in entities:
                continue
            results.append(self._run_stage(stage, entities[stage.kind], duplicates.get(stage.kind, 0)))
        return results

    def _run_stage(self, stage: Stage, items: List[Any], duplicates: int) -> StageResult:
        result = StageResult(stage=stage.kind, processed=len(items), duplicates=duplicates)
        started = time.perf_counter()
        logger.info(f"Stage '{stage.kind}': writing {len(items)} entities ({stage.mode.value})")

        if stage.mode is WriteMode.REPLACE_ALL:
            try:
                result.inserted = self.reconciler.replace_turbines(items)
            except Exception as e:
                raise StageError(stage.kind, e) from e
        else:
            write = self.writer.upsert
            if stage.mode is WriteMode.REFERENCE_INSERT:
                write = self.writer.insert_if_absent

            for entity in items:
                try:
                    result.record(write(stage.kind, entity))
                except Exception as e:
                    raise StageError(stage.kind, e, key=entity.key) from e

            if stage.mode is WriteMode.UPSERT_AND_PRUNE:
                try:
                    result.deleted = self.reconciler.prune_states([entity.key for entity in items])
                except Exception as e:
                    raise StageError(stage.kind, e) from e

        result.duration_seconds = time.perf_counter() - started
        logger.info(
            f"Stage '{stage.kind}' done: {result.inserted} inserted, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.deleted} deleted "
            f"in {result.duration_seconds:.2f} seconds"
        )
        return result
