"""Background computation of text fingerprints.

Scans for records whose text has no fingerprint yet, extracts text blocks
and stores the sorted list of block ids on the record. While a pass is
running the calculator reports itself busy so the model builders hold off.
"""

import logging
import threading
from typing import Callable, Optional

from annotlearn.config import WorkerSettings
from annotlearn.constants import CUTOFF_MARKER
from annotlearn.exceptions import ExtractorError
from annotlearn.storage.base import RecordStore
from annotlearn.tasks.base import BaseWorker

logger = logging.getLogger(__name__)

BlockExtractor = Callable[[str], list[str]]


def truncate_at_cutoff(text: str) -> str:
    """Drop everything from the first cutoff marker onwards."""
    idx = text.find(CUTOFF_MARKER)
    return text if idx < 0 else text[:idx]


class FingerprintCalculator(BaseWorker):
    """Keeps record fingerprints in step with record text.

    Args:
        store: Record store
        extractor: Callable turning text into blocks
        stop_event: Shared process stop signal
        settings: Worker timing
        on_pass_complete: Called with the number of fingerprints applied
            after a pass that changed anything
    """

    name = "fingerprint-calculator"

    def __init__(
        self,
        store: RecordStore,
        extractor: BlockExtractor,
        stop_event: Optional[threading.Event] = None,
        settings: Optional[WorkerSettings] = None,
        on_pass_complete: Optional[Callable[[int], None]] = None,
    ):
        super().__init__(stop_event=stop_event, settings=settings)
        self.store = store
        self.extractor = extractor
        self.on_pass_complete = on_pass_complete
        self._busy = threading.Event()

    @property
    def is_busy(self) -> bool:
        """Advisory flag: True while a pass is in progress."""
        return self._busy.is_set()

    def run(self) -> None:
        self.wait_task(self.settings.fingerprint_startup_delay)

        while not self.stopped:
            try:
                applied = self.do_task()
            except Exception as e:
                logger.error(f"Error in fingerprint pass: {e}", exc_info=True)
                self.sleep_on_error()
                continue

            if applied == 0 and not self.stopped:
                logger.info("Found nothing, pausing...")
                self.wait_task(self.settings.long_pause)

    def do_task(self) -> int:
        """Run one pass over records missing a fingerprint.

        Returns:
            Number of fingerprints applied
        """
        applied = 0
        self._busy.set()
        try:
            total = self.store.count_records()
            todo = self.store.get_records_missing_fingerprint()
            logger.info(f"Polling: {len(todo)} records need fingerprints (of {total})")

            block_ids: dict[str, int] = {}
            for pos, record_id in enumerate(todo, 1):
                if self.stopped:
                    break
                if self._apply(record_id, block_ids):
                    applied += 1
                    logger.debug(f"Fingerprinted record {record_id} ({pos} of {len(todo)})")
        finally:
            self._busy.clear()

        if applied:
            logger.info(f"Applied {applied} fingerprints")
            if self.on_pass_complete is not None:
                self.on_pass_complete(applied)
        return applied

    def _apply(self, record_id: int, block_ids: dict[str, int]) -> bool:
        try:
            record = self.store.get_record(record_id)
            if record is None or not record.text.strip() or record.has_fingerprint:
                return False
            fingerprint = self.calculate(record.text, block_ids)
            if not self.store.set_record_fingerprint(record_id, fingerprint, record.text):
                logger.debug(f"Record {record_id} changed during calculation, will retry next pass")
                return False
        except ExtractorError:
            raise
        except Exception as e:
            logger.warning(f"Skipping record {record_id}, will retry next pass: {e}")
            return False
        return True

    def calculate(self, text: str, block_ids: Optional[dict[str, int]] = None) -> list[int]:
        """Compute the fingerprint of a piece of text.

        Args:
            text: Record text
            block_ids: Per-pass cache of block -> id lookups

        Returns:
            Sorted, distinct block ids
        """
        block_ids = block_ids if block_ids is not None else {}
        fingerprint = set()
        for block in self.extractor(truncate_at_cutoff(text)):
            fp = block_ids.get(block)
            if fp is None:
                fp = self.store.get_or_create_block_id(block)
                block_ids[block] = fp
            fingerprint.add(fp)
        return sorted(fingerprint)
