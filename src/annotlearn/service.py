"""Process wiring for the training workers.

The service owns exactly one instance of each worker and the shared stop
signal. Callers that change records tell the service, which advances the
relevant watermarks and wakes the workers.

Example:
    >>> service = TrainingService(store, ontology, SpacyBlockExtractor())
    >>> service.start()
    >>> service.notify_annotations_changed()
    >>> service.stop()
"""

import logging
import threading
from typing import Optional

from annotlearn.config import WorkerSettings
from annotlearn.models import ModelFamily
from annotlearn.ontology import OntologyProvider
from annotlearn.storage.base import RecordStore
from annotlearn.targets import update_annotation_targets
from annotlearn.tasks.correlation_builder import CorrelationBuilder
from annotlearn.tasks.fingerprints import BlockExtractor, FingerprintCalculator
from annotlearn.tasks.model_builder import ModelBuilder

logger = logging.getLogger(__name__)


class TrainingService:
    """Starts, signals and stops the three training workers.

    Args:
        store: Record store shared by all workers
        ontology: Schema and ontology lookups
        extractor: Text block extractor for fingerprinting
        settings: Worker timing and limits
    """

    def __init__(
        self,
        store: RecordStore,
        ontology: OntologyProvider,
        extractor: BlockExtractor,
        settings: Optional[WorkerSettings] = None,
    ):
        self.store = store
        self.ontology = ontology
        self.settings = settings or WorkerSettings()
        self.stop_event = threading.Event()
        self._targets_lock = threading.Lock()

        self.fingerprints = FingerprintCalculator(
            store,
            extractor,
            stop_event=self.stop_event,
            settings=self.settings,
            on_pass_complete=self._fingerprints_updated,
        )
        self.model_builder = ModelBuilder(
            store,
            ontology,
            stop_event=self.stop_event,
            settings=self.settings,
            fingerprints=self.fingerprints,
        )
        self.correlation_builder = CorrelationBuilder(
            store,
            ontology,
            stop_event=self.stop_event,
            settings=self.settings,
            fingerprints=self.fingerprints,
            yield_to=self.model_builder,
        )

    @property
    def workers(self) -> list:
        return [self.fingerprints, self.model_builder, self.correlation_builder]

    def start(self) -> None:
        """Bring the target table up to date and start every worker."""
        self.update_targets()
        for worker in self.workers:
            worker.start()
        logger.info("Training service started")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Signal every worker to stop and wait for them.

        Returns:
            True if all worker threads exited within the timeout
        """
        logger.info("Training service shutting down")
        for worker in self.workers:
            worker.request_stop()
        timeout = self.settings.stop_timeout if timeout is None else timeout
        finished = all([worker.join(timeout) for worker in self.workers])
        if not finished:
            logger.warning("Some workers did not stop within the timeout")
        return finished

    def update_targets(self) -> int:
        with self._targets_lock:
            return update_annotation_targets(self.store, self.ontology)

    def notify_annotations_changed(self) -> dict[str, int]:
        """Record that curated annotations changed.

        Extends the target table, advances both family watermarks and
        wakes both builders.

        Returns:
            New watermark per family
        """
        self.update_targets()
        watermarks = {
            ModelFamily.NLP.value: self.store.next_watermark(ModelFamily.NLP),
            ModelFamily.CORR.value: self.store.next_watermark(ModelFamily.CORR),
        }
        self.model_builder.bump()
        self.correlation_builder.bump()
        return watermarks

    def notify_text_changed(self) -> None:
        """Wake the fingerprint calculator after record text changed."""
        self.fingerprints.bump()

    def _fingerprints_updated(self, num_applied: int) -> None:
        watermark = self.store.next_watermark(ModelFamily.NLP)
        logger.info(f"{num_applied} fingerprints updated, NLP watermark now {watermark}")
        self.model_builder.bump()
        self.correlation_builder.bump()

    def status(self) -> dict:
        """Snapshot of worker and watermark state."""
        return {
            "workers": {
                worker.name: {
                    "state": worker.state.value,
                    "paused": worker.is_paused,
                }
                for worker in self.workers
            },
            "fingerprints_busy": self.fingerprints.is_busy,
            "watermarks": {
                family.value: self.store.get_watermark(family) for family in ModelFamily
            },
        }
