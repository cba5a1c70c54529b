"""annotlearn - Incremental annotation model training.

Background workers that keep per-annotation Naive Bayes models in step
with a growing corpus of annotated free-text records.

Features:
- Laplace-smoothed Naive Bayes with ROC/AUC self-evaluation and calibration
- Text fingerprinting from POS-tagged blocks (spaCy, optional)
- NLP models (text -> annotation) and correlation models (annotation -> annotation)
- Watermark-stamped models: interrupted sweeps resume, stale models are rebuilt
- SQLite persistence

Example:
    >>> from annotlearn import SQLiteStorage, StaticOntology, TrainingService
    >>> from annotlearn.nlp import SpacyBlockExtractor
    >>> store = SQLiteStorage("./annotlearn.db")
    >>> ontology = StaticOntology.from_toml("./ontology.toml")
    >>> service = TrainingService(store, ontology, SpacyBlockExtractor())
    >>> service.start()
"""

__version__ = "0.1.0"

from annotlearn.config import WorkerSettings, load_worker_settings
from annotlearn.learning.naive_bayes import BayesianModel, build_model
from annotlearn.models import (
    Annotation,
    AnnotationTarget,
    Model,
    ModelFamily,
    Record,
    TrainingStats,
    calibrated_probability,
    target_key,
)
from annotlearn.ontology import OntologyProvider, StaticOntology
from annotlearn.service import TrainingService
from annotlearn.storage.base import RecordStore
from annotlearn.storage.sqlite import SQLiteStorage
from annotlearn.targets import update_annotation_targets

__all__ = [
    "Annotation",
    "AnnotationTarget",
    "BayesianModel",
    "Model",
    "ModelFamily",
    "OntologyProvider",
    "Record",
    "RecordStore",
    "SQLiteStorage",
    "StaticOntology",
    "TrainingService",
    "TrainingStats",
    "WorkerSettings",
    "build_model",
    "calibrated_probability",
    "load_worker_settings",
    "target_key",
    "update_annotation_targets",
]
