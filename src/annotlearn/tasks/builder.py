"""Watermark-driven model sweeps shared by both model families.

A builder watches its family watermark. Whenever the watermark moves it
sweeps the annotation targets in priority order and publishes a model
(or a blank sentinel) stamped with that watermark for each one. Targets
already stamped with the current watermark are skipped, so an interrupted
sweep resumes where it left off.
"""

import logging
import threading
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from annotlearn.config import WorkerSettings
from annotlearn.learning.naive_bayes import build_model
from annotlearn.models import Model, ModelFamily
from annotlearn.ontology import OntologyProvider
from annotlearn.storage.base import RecordStore
from annotlearn.tasks.base import BaseWorker

logger = logging.getLogger(__name__)


def target_in_priority_order(
    required: Iterable[int], by_watermark: Mapping[int, Sequence[int]]
) -> list[int]:
    """Order targets for a sweep.

    Targets without any stored model come first (ascending), followed by
    stored targets from the oldest watermark to the newest.

    Args:
        required: Targets in the annotation target table
        by_watermark: Stored targets grouped by model watermark

    Returns:
        Targets in the order they should be (re)built
    """
    stored = {t for targets in by_watermark.values() for t in targets}
    ordered = sorted(t for t in set(required) if t not in stored)
    for watermark in sorted(by_watermark):
        ordered.extend(by_watermark[watermark])
    return ordered


@dataclass
class TrainingRows:
    """Feature rows and labels for one target."""

    rows: list[Sequence[int]]
    active: list[bool]
    is_explicit: bool = False


@dataclass
class SweepResult:
    """Outcome of one create_all_models call.

    Attributes:
        watermark: Watermark the sweep built against
        built: Models published
        blank: Blank sentinels published
        skipped: Targets already stamped with the watermark
        aborted: Whether the sweep stopped early (stop or watermark change)
        no_records: Whether there were no curated records to train on
    """

    watermark: int
    built: int = 0
    blank: int = 0
    skipped: int = 0
    aborted: bool = False
    no_records: bool = False

    @property
    def processed(self) -> int:
        return self.built + self.blank

    def to_dict(self) -> dict:
        return {
            "watermark": self.watermark,
            "built": self.built,
            "blank": self.blank,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "no_records": self.no_records,
        }


class WatermarkBuilder(BaseWorker):
    """Base for the NLP and correlation model builders.

    Subclasses gather their training data once per sweep in compile()
    and assemble per-target rows in prepare().
    """

    family: ModelFamily

    def __init__(
        self,
        store: RecordStore,
        ontology: OntologyProvider,
        stop_event: Optional[threading.Event] = None,
        settings: Optional[WorkerSettings] = None,
        fingerprints: Optional[Any] = None,
    ):
        super().__init__(stop_event=stop_event, settings=settings)
        self.store = store
        self.ontology = ontology
        self.fingerprints = fingerprints

    def calculator_busy(self) -> bool:
        return self.fingerprints is not None and self.fingerprints.is_busy

    def run(self) -> None:
        self.wait_task(self.settings.builder_startup_delay)

        watermark = 0
        while not self.stopped:
            try:
                if self.calculator_busy():
                    self.wait_task(self.settings.short_pause)
                    continue

                current = self.store.get_watermark(self.family)
                if current != watermark:
                    watermark = current
                    logger.info(f"{self.name}: updating models for watermark {watermark}")
                    result = self.create_all_models(watermark)
                    if result.no_records:
                        logger.info(f"{self.name}: no curated records, sweep skipped")
                        continue
                    logger.info(
                        f"{self.name}: sweep {'aborted' if result.aborted else 'complete'}, "
                        f"{result.built} built, {result.blank} blank, {result.skipped} current"
                    )
                else:
                    logger.info(f"{self.name}: awaiting further action...")
                    self.wait_task(self.settings.long_pause)
            except Exception as e:
                logger.error(f"{self.name}: error during sweep: {e}", exc_info=True)
                watermark = 0
                self.sleep_on_error()

    def create_all_models(self, watermark: int) -> SweepResult:
        """Bring every target's model up to date with the watermark.

        Returns early (aborted) when stop is requested or the family
        watermark changes; every model written so far stays valid.

        Args:
            watermark: Family watermark to stamp on new models

        Returns:
            SweepResult with per-outcome counts
        """
        result = SweepResult(watermark=watermark)
        targets = self.store.get_annotation_targets()
        record_ids = self.store.get_curated_record_ids()
        logger.info(
            f"{self.name}: constructing with {len(targets)} annotation targets, "
            f"{len(record_ids)} records"
        )
        if not record_ids:
            result.no_records = True
            return result

        key_to_target = {t.key: t.target for t in targets}
        target_to_annot = {t.target: t for t in targets}

        training = self.compile(record_ids, key_to_target)
        if training is None:
            result.aborted = True
            return result

        count = 0
        order = target_in_priority_order(
            target_to_annot.keys(), self.store.group_by_watermarks(self.family)
        )
        for target in order:
            if self.stopped or self.store.get_watermark(self.family) != watermark:
                result.aborted = True
                break
            if self.store.get_model_watermark(self.family, target) == watermark:
                result.skipped += 1
                continue

            annot = target_to_annot.get(target)
            if annot is None:
                logger.info(f"{self.name}: annotation#{target} no longer a target, blanked")
                self.store.blank_model(self.family, target, watermark)
                result.blank += 1
                continue

            prepared = self.prepare(training, target)
            bayes = build_model(prepared.rows, prepared.active)
            if bayes is not None:
                logger.debug(f"{self.name}: annotation#{target}, source {annot.key}")
                model = Model.from_bayesian(bayes, target, watermark, prepared.is_explicit)
                self.store.submit_model(self.family, model)
                result.built += 1
            else:
                logger.debug(f"{self.name}: annotation#{target}, not modelled")
                self.store.blank_model(self.family, target, watermark)
                result.blank += 1

            count += 1
            self.after_target(count)

        return result

    @abstractmethod
    def compile(self, record_ids: Sequence[int], key_to_target: Mapping[str, int]) -> Any:
        """Gather per-sweep training data, or None if stopped meanwhile."""
        pass

    @abstractmethod
    def prepare(self, training: Any, target: int) -> TrainingRows:
        """Assemble the rows and labels for one target."""
        pass

    def after_target(self, count: int) -> None:
        """Hook run after each modelling attempt; used for cooperative pauses."""
        pass
