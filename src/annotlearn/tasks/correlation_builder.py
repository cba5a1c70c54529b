"""Correlation model builder: other annotations -> annotation models.

For target T, each record contributes a row made of its other targets
(T removed) labelled by whether T itself is present. Records left with
nothing once T is removed are skipped.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from annotlearn.config import WorkerSettings
from annotlearn.exceptions import StoreError
from annotlearn.models import ModelFamily
from annotlearn.ontology import OntologyProvider
from annotlearn.storage.base import RecordStore
from annotlearn.targets import expand_record_targets
from annotlearn.tasks.base import BaseWorker
from annotlearn.tasks.builder import TrainingRows, WatermarkBuilder

logger = logging.getLogger(__name__)


@dataclass
class RecordInformation:
    """A record's expanded annotation targets.

    Attributes:
        record_id: Source record
        targets: Sorted target ids, ancestors included
        explicit: Targets annotated directly on the record
    """

    record_id: int
    targets: list[int] = field(default_factory=list)
    explicit: set[int] = field(default_factory=set)

    def fingerprint(self, target: int) -> list[int]:
        """The record's targets with the given one removed."""
        return [t for t in self.targets if t != target]

    def is_active(self, target: int) -> bool:
        return target in self.targets

    def is_explicit(self, target: int) -> bool:
        return target in self.explicit


class CorrelationBuilder(WatermarkBuilder):
    """Builds CORR models that predict annotations from other annotations.

    Args:
        yield_to: Worker whose cooperative pauses this builder mirrors
    """

    name = "correlation-builder"
    family = ModelFamily.CORR

    def __init__(
        self,
        store: RecordStore,
        ontology: OntologyProvider,
        stop_event: Optional[threading.Event] = None,
        settings: Optional[WorkerSettings] = None,
        fingerprints=None,
        yield_to: Optional[BaseWorker] = None,
    ):
        super().__init__(
            store, ontology, stop_event=stop_event, settings=settings, fingerprints=fingerprints
        )
        self.yield_to = yield_to

    def compile(
        self, record_ids: Sequence[int], key_to_target: Mapping[str, int]
    ) -> Optional[list[RecordInformation]]:
        infos = []
        for record_id in record_ids:
            if self.stopped:
                return None
            try:
                record = self.store.get_record(record_id)
            except StoreError as e:
                logger.warning(f"Cannot retrieve record {record_id}: {e}")
                continue
            if record is None or not record.annotations:
                continue
            if not self.ontology.has_schema(record.schema_uri):
                continue

            targets, explicit = expand_record_targets(record, self.ontology, key_to_target)
            if targets:
                infos.append(RecordInformation(record_id, sorted(targets), explicit))

        logger.info(f"Compiled target sets for {len(infos)} records")
        return infos

    def prepare(self, training: list[RecordInformation], target: int) -> TrainingRows:
        prepared = TrainingRows(rows=[], active=[])
        for info in training:
            row = info.fingerprint(target)
            if not row:
                continue
            prepared.rows.append(row)
            prepared.active.append(info.is_active(target))
            prepared.is_explicit = prepared.is_explicit or info.is_explicit(target)
        return prepared

    def after_target(self, count: int) -> None:
        if self.yield_to is not None and self.yield_to.is_paused:
            self.pause_task(self.settings.correlation_pause_seconds)
