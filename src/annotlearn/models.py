"""Data models for annotlearn.

Defines the records the workers read and the models they publish.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from annotlearn.constants import (
    DEGENERATE_HIGH_PROBABILITY,
    DEGENERATE_LOW_PROBABILITY,
    TARGET_KEY_SEPARATOR,
)


class ModelFamily(str, Enum):
    """Which feature space a model was trained on."""

    NLP = "nlp"  # text fingerprints
    CORR = "corr"  # co-occurring annotations


def target_key(prop_uri: str, value_uri: str) -> str:
    """Build the lookup key for a (property, value) pair.

    Example:
        >>> target_key("prop:cell", "bao:hepatocyte")
        'prop:cell::bao:hepatocyte'
    """
    return f"{prop_uri}{TARGET_KEY_SEPARATOR}{value_uri}"


def calibrated_probability(raw: float, calib_low: float, calib_high: float) -> float:
    """Map a raw score onto (0, 1) using a model's calibration band.

    A score at calib_low maps to 0.5 and one at calib_high to 0.75.
    """
    if calib_high == calib_low:
        return DEGENERATE_HIGH_PROBABILITY if raw > calib_low else DEGENERATE_LOW_PROBABILITY
    return math.atan((raw - calib_low) / (calib_high - calib_low)) / math.pi + 0.5


@dataclass
class Annotation:
    """A single semantic annotation on a record.

    Attributes:
        prop_uri: Property (assay field) the annotation belongs to
        value_uri: Ontology term assigned to the property
        group_nest: Group path locating the property within the schema
    """

    prop_uri: str
    value_uri: str
    group_nest: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "prop_uri": self.prop_uri,
            "value_uri": self.value_uri,
            "group_nest": list(self.group_nest),
        }


@dataclass
class Record:
    """A free-text scientific record with its curated annotations.

    Attributes:
        record_id: Unique identifier
        schema_uri: Schema the annotations were made against (None if unknown)
        text: Free-text description
        annotations: Annotations applied by curators
        fingerprint: Sorted text fingerprint ids, None until computed
        curated: Whether the record counts as training data
    """

    record_id: int
    schema_uri: Optional[str] = None
    text: str = ""
    annotations: list[Annotation] = field(default_factory=list)
    fingerprint: Optional[list[int]] = None
    curated: bool = True

    @property
    def has_fingerprint(self) -> bool:
        """True once the calculator has stored a fingerprint (even an empty one)."""
        return self.fingerprint is not None

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "schema_uri": self.schema_uri,
            "text": self.text,
            "annotations": [a.to_dict() for a in self.annotations],
            "fingerprint": self.fingerprint,
            "curated": self.curated,
        }


@dataclass(frozen=True)
class AnnotationTarget:
    """A suggestible (property, value) pair and its integer id."""

    target: int
    prop_uri: str
    value_uri: str

    @property
    def key(self) -> str:
        return target_key(self.prop_uri, self.value_uri)


@dataclass
class Model:
    """A published per-target classifier.

    A blank model (``fplist is None``) records that the target was
    considered at ``watermark`` but had insufficient signal.

    Attributes:
        target: Annotation target id
        watermark: Family watermark the model was built against
        fplist: Sorted fingerprint ids with a contribution
        contribs: Log-odds contribution for each entry of fplist
        calib_low: Lower edge of the calibration band
        calib_high: Upper edge of the calibration band
        roc_auc: Area under the self-evaluated ROC curve
        is_explicit: Whether the target was ever directly annotated in training
    """

    target: int
    watermark: int
    fplist: Optional[list[int]] = None
    contribs: Optional[list[float]] = None
    calib_low: float = 0.0
    calib_high: float = 0.0
    roc_auc: float = 0.0
    is_explicit: bool = False

    @classmethod
    def blank(cls, target: int, watermark: int) -> "Model":
        """Create the empty sentinel for a target."""
        return cls(target=target, watermark=watermark)

    @classmethod
    def from_bayesian(
        cls, bayes: Any, target: int, watermark: int, is_explicit: bool
    ) -> "Model":
        """Stamp a trained BayesianModel for publishing."""
        return cls(
            target=target,
            watermark=watermark,
            fplist=[int(fp) for fp in bayes.fplist],
            contribs=[float(c) for c in bayes.contribs],
            calib_low=float(bayes.calib_low),
            calib_high=float(bayes.calib_high),
            roc_auc=float(bayes.roc_auc),
            is_explicit=is_explicit,
        )

    @property
    def is_blank(self) -> bool:
        return self.fplist is None

    def score(self, fingerprints: Sequence[int]) -> float:
        """Sum the contributions of the fingerprints the model knows about."""
        if self.is_blank:
            return 0.0
        lookup = dict(zip(self.fplist, self.contribs))
        return float(sum(lookup.get(fp, 0.0) for fp in set(fingerprints)))

    def probability(self, fingerprints: Sequence[int]) -> Optional[float]:
        """Map the raw score onto (0, 1) using the calibration band.

        Returns:
            Calibrated probability, or None for a blank model
        """
        if self.is_blank:
            return None
        return calibrated_probability(
            self.score(fingerprints), self.calib_low, self.calib_high
        )

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "watermark": self.watermark,
            "fplist": self.fplist,
            "contribs": self.contribs,
            "calib_low": self.calib_low,
            "calib_high": self.calib_high,
            "roc_auc": self.roc_auc,
            "is_explicit": self.is_explicit,
        }


@dataclass
class TrainingStats:
    """Summary of the store's training state.

    Attributes:
        total_records: All records in the store
        curated_records: Records used for training
        missing_fingerprints: Records still waiting for a fingerprint
        annotation_targets: Size of the target table
        text_blocks: Distinct text blocks seen so far
        watermarks: Current watermark per family
        models: Stored models per family (blank included)
    """

    total_records: int = 0
    curated_records: int = 0
    missing_fingerprints: int = 0
    annotation_targets: int = 0
    text_blocks: int = 0
    watermarks: dict[str, int] = field(default_factory=dict)
    models: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_records": self.total_records,
            "curated_records": self.curated_records,
            "missing_fingerprints": self.missing_fingerprints,
            "annotation_targets": self.annotation_targets,
            "text_blocks": self.text_blocks,
            "watermarks": dict(self.watermarks),
            "models": dict(self.models),
        }
