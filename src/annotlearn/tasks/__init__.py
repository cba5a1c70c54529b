"""Background workers for annotlearn.

Workers:
- FingerprintCalculator: text -> sorted block fingerprints
- ModelBuilder: fingerprints -> NLP annotation models
- CorrelationBuilder: co-occurring annotations -> CORR annotation models
"""

from annotlearn.tasks.base import BaseWorker, WorkerState
from annotlearn.tasks.builder import SweepResult, WatermarkBuilder, target_in_priority_order
from annotlearn.tasks.correlation_builder import CorrelationBuilder, RecordInformation
from annotlearn.tasks.fingerprints import FingerprintCalculator
from annotlearn.tasks.model_builder import ModelBuilder, prune_fingerprints

__all__ = [
    "BaseWorker",
    "CorrelationBuilder",
    "FingerprintCalculator",
    "ModelBuilder",
    "RecordInformation",
    "SweepResult",
    "WatermarkBuilder",
    "WorkerState",
    "prune_fingerprints",
    "target_in_priority_order",
]
