"""Pytest configuration and fixtures."""

import tempfile
import threading
from pathlib import Path

import pytest
from click.testing import CliRunner

from annotlearn.config import WorkerSettings
from annotlearn.models import Annotation, Record
from annotlearn.ontology import StaticOntology
from annotlearn.storage.sqlite import SQLiteStorage

SCHEMA = "schema:assay"

ONTOLOGY = {
    SCHEMA: {
        "prop:target": {
            "suggestible": True,
            "parents": {
                "val:kinase_a": "val:kinase",
                "val:kinase_b": "val:kinase",
                "val:kinase": "val:enzyme",
            },
        },
        "prop:assay_type": {
            "suggestible": True,
            "parents": {
                "val:binding": "val:biochemical",
                "val:functional": "val:cell_based",
            },
        },
        "prop:notes": {"suggestible": False},
    }
}


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli():
    """Get the actual CLI command for testing."""
    from annotlearn.cli import main
    return main


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    """Create a fresh SQLite store."""
    return SQLiteStorage(temp_dir / "test.db")


@pytest.fixture
def ontology():
    """A small two-property ontology."""
    return StaticOntology(ONTOLOGY)


@pytest.fixture
def fast_settings():
    """Worker settings with no startup delays and short waits."""
    return WorkerSettings(
        fingerprint_startup_delay=0.0,
        builder_startup_delay=0.0,
        short_pause=0.05,
        long_pause=0.2,
        error_sleep=0.1,
        stop_timeout=5.0,
        pause_every=50,
        pause_seconds=0.0,
        correlation_pause_seconds=0.0,
    )


@pytest.fixture
def stop_event():
    """Shared stop signal."""
    return threading.Event()


def make_record(fingerprint=None, annotations=(), text="", schema_uri=SCHEMA, curated=True):
    """Build a Record from (prop, value) pairs."""
    return Record(
        record_id=0,
        schema_uri=schema_uri,
        text=text,
        annotations=[Annotation(prop, value) for prop, value in annotations],
        fingerprint=None if fingerprint is None else list(fingerprint),
        curated=curated,
    )


@pytest.fixture
def populated_storage(storage):
    """Store with four fingerprinted, annotated records."""
    storage.add_record(make_record([1, 2, 3], [("prop:target", "val:kinase_a")]))
    storage.add_record(make_record([1, 2, 4], [("prop:target", "val:kinase_b")]))
    storage.add_record(make_record([5, 6], [("prop:assay_type", "val:binding")]))
    storage.add_record(make_record([5, 7], [("prop:assay_type", "val:functional")]))
    return storage
