"""Tests for ontology lookups and the annotation target table."""

import pytest

from conftest import SCHEMA, make_record

from annotlearn.exceptions import OntologyError, StoreError
from annotlearn.models import Annotation
from annotlearn.ontology import StaticOntology
from annotlearn.targets import (
    expand_record_targets,
    iter_expanded_annotations,
    update_annotation_targets,
)

ONTOLOGY_TOML = """
[schemas."schema:assay".properties."prop:target"]
suggestible = true

[schemas."schema:assay".properties."prop:target".parents]
"val:kinase_a" = "val:kinase"
"val:kinase" = "val:enzyme"

[schemas."schema:assay".properties."prop:notes"]
suggestible = false
"""


class TestStaticOntology:
    """Tests for StaticOntology."""

    def test_has_schema(self, ontology):
        """Test known, unknown and missing schemas."""
        assert ontology.has_schema(SCHEMA)
        assert not ontology.has_schema("schema:other")
        assert not ontology.has_schema(None)

    def test_is_suggestible(self, ontology):
        """Test suggestibility per property."""
        assert ontology.is_suggestible(SCHEMA, "prop:target")
        assert not ontology.is_suggestible(SCHEMA, "prop:notes")
        assert not ontology.is_suggestible(SCHEMA, "prop:unknown")

    def test_expand_ancestors(self, ontology):
        """Test the value comes first followed by its ancestors."""
        assert ontology.expand_ancestors(SCHEMA, "prop:target", [], "val:kinase_a") == [
            "val:kinase_a", "val:kinase", "val:enzyme",
        ]
        assert ontology.expand_ancestors(SCHEMA, "prop:target", [], "val:other") == ["val:other"]
        assert ontology.expand_ancestors(SCHEMA, "prop:unknown", [], "val:x") is None

    def test_cycle_terminates(self):
        """Test a cyclic parent map does not loop forever."""
        onto = StaticOntology({"s": {"p": {"suggestible": True, "parents": {"a": "b", "b": "a"}}}})
        assert onto.expand_ancestors("s", "p", [], "a") == ["a", "b"]

    def test_from_toml(self, temp_dir):
        """Test loading an ontology file."""
        path = temp_dir / "ontology.toml"
        path.write_text(ONTOLOGY_TOML)

        onto = StaticOntology.from_toml(path)

        assert onto.is_suggestible(SCHEMA, "prop:target")
        assert not onto.is_suggestible(SCHEMA, "prop:notes")
        assert onto.expand_ancestors(SCHEMA, "prop:target", [], "val:kinase_a")[-1] == "val:enzyme"

    def test_from_toml_invalid(self, temp_dir):
        """Test malformed and missing files raise OntologyError."""
        path = temp_dir / "bad.toml"
        path.write_text("schemas = [")

        with pytest.raises(OntologyError):
            StaticOntology.from_toml(path)
        with pytest.raises(OntologyError):
            StaticOntology.from_toml(temp_dir / "missing.toml")


class TestExpansion:
    """Tests for expanding record annotations."""

    def test_explicit_and_ancestors(self, ontology):
        """Test directly applied values are explicit and ancestors are not."""
        record = make_record(annotations=[("prop:target", "val:kinase_a"), ("prop:notes", "x")])

        expanded = list(iter_expanded_annotations(record, ontology))

        assert expanded == [
            ("prop:target", "val:kinase_a", True),
            ("prop:target", "val:kinase", False),
            ("prop:target", "val:enzyme", False),
        ]

    def test_unknown_schema(self, ontology):
        """Test records on unknown schemas expand to nothing."""
        record = make_record(annotations=[("prop:target", "val:kinase_a")], schema_uri="schema:other")
        assert list(iter_expanded_annotations(record, ontology)) == []

    def test_expand_record_targets(self, ontology):
        """Test pairs are mapped to ids and unknown pairs are skipped."""
        record = make_record(annotations=[("prop:target", "val:kinase_a")])
        key_to_target = {"prop:target::val:kinase_a": 1, "prop:target::val:kinase": 2}

        targets, explicit = expand_record_targets(record, ontology, key_to_target)

        assert targets == {1, 2}
        assert explicit == {1}


class TestUpdateAnnotationTargets:
    """Tests for update_annotation_targets."""

    def test_populates_table(self, populated_storage, ontology):
        """Test every value and ancestor gets an id in first-seen order."""
        added = update_annotation_targets(populated_storage, ontology)

        targets = populated_storage.get_annotation_targets()
        assert added == 8
        assert [(t.target, t.value_uri) for t in targets[:4]] == [
            (1, "val:kinase_a"), (2, "val:kinase"), (3, "val:enzyme"), (4, "val:kinase_b"),
        ]

    def test_idempotent(self, populated_storage, ontology):
        """Test a second update adds nothing."""
        update_annotation_targets(populated_storage, ontology)
        assert update_annotation_targets(populated_storage, ontology) == 0

    def test_new_ids_continue_from_max(self, storage, ontology):
        """Test new ids follow the highest existing id."""
        storage.add_annotation_target(50, "prop:assay_type", "val:binding")
        storage.add_record(make_record([1], [("prop:assay_type", "val:functional")]))

        update_annotation_targets(storage, ontology)

        assert [t.target for t in storage.get_annotation_targets()] == [50, 51, 52]

    def test_uncurated_records_ignored(self, storage, ontology):
        """Test only curated records feed the table."""
        storage.add_record(make_record([1], [("prop:target", "val:kinase_a")], curated=False))
        assert update_annotation_targets(storage, ontology) == 0

    def test_fetch_failure_skipped(self, populated_storage, ontology, monkeypatch):
        """Test a failing record is skipped while the others are processed."""
        original = populated_storage.get_record

        def get_record(record_id):
            if record_id == 1:
                raise StoreError("boom")
            return original(record_id)

        monkeypatch.setattr(populated_storage, "get_record", get_record)

        assert update_annotation_targets(populated_storage, ontology) == 7


class TestAnnotation:
    """Tests for Annotation group nests."""

    def test_group_nest_accepted(self, ontology):
        """Test annotations inside groups resolve like top-level ones."""
        record = make_record()
        record.annotations = [Annotation("prop:target", "val:kinase", ["group:1"])]

        assert [v for _, v, _ in iter_expanded_annotations(record, ontology)] == [
            "val:kinase", "val:enzyme",
        ]
