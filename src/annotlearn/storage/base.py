"""Persistence contract consumed by the training workers.

The workers are a compute layer over these operations. Every write is a
single-row upsert; consistency across targets comes from watermark stamps,
not transactions.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from annotlearn.models import AnnotationTarget, Model, ModelFamily, Record


class RecordStore(ABC):
    """Abstract record, target, watermark and model store."""

    # ===== records =====

    @abstractmethod
    def get_curated_record_ids(self) -> list[int]:
        pass

    @abstractmethod
    def get_record(self, record_id: int) -> Optional[Record]:
        pass

    @abstractmethod
    def count_records(self) -> int:
        pass

    @abstractmethod
    def get_records_missing_fingerprint(self) -> list[int]:
        """Records with text whose fingerprint has not been computed."""
        pass

    @abstractmethod
    def set_record_fingerprint(
        self, record_id: int, fingerprint: Sequence[int], text: str
    ) -> bool:
        """Store a fingerprint computed from text.

        Returns False, leaving the record pending, when the record no longer
        holds that text or already has a fingerprint.
        """
        pass

    @abstractmethod
    def get_or_create_block_id(self, block: str) -> int:
        """Map a text block to its fingerprint id, allocating one if new."""
        pass

    # ===== annotation targets =====

    @abstractmethod
    def get_annotation_targets(self) -> list[AnnotationTarget]:
        pass

    @abstractmethod
    def add_annotation_target(self, target: int, prop_uri: str, value_uri: str) -> None:
        pass

    # ===== watermarks =====

    @abstractmethod
    def get_watermark(self, family: ModelFamily) -> int:
        pass

    @abstractmethod
    def next_watermark(self, family: ModelFamily) -> int:
        """Advance and return the family watermark."""
        pass

    # ===== models =====

    @abstractmethod
    def get_model_watermark(self, family: ModelFamily, target: int) -> int:
        """Watermark of the stored model, 0 when there is none."""
        pass

    @abstractmethod
    def group_by_watermarks(self, family: ModelFamily) -> dict[int, list[int]]:
        """Stored targets grouped by model watermark."""
        pass

    @abstractmethod
    def get_model(self, family: ModelFamily, target: int) -> Optional[Model]:
        pass

    @abstractmethod
    def submit_model(self, family: ModelFamily, model: Model) -> None:
        pass

    def blank_model(self, family: ModelFamily, target: int, watermark: int) -> None:
        """Publish the empty sentinel for a target."""
        self.submit_model(family, Model.blank(target, watermark))
