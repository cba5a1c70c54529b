"""Annotation target table maintenance.

Every suggestible (property, value) pair, including the ontology
ancestors of directly applied values, gets a stable integer target id.
The table only grows. It is extended by the service when annotations
change; the model builders only read it.
"""

import logging
from typing import Iterator, Mapping

from annotlearn.exceptions import StoreError
from annotlearn.models import Record, target_key
from annotlearn.ontology import OntologyProvider
from annotlearn.storage.base import RecordStore

logger = logging.getLogger(__name__)


def iter_expanded_annotations(
    record: Record, ontology: OntologyProvider
) -> Iterator[tuple[str, str, bool]]:
    """Walk a record's suggestible annotations and their ancestors.

    Annotations on properties that are not suggestible, or whose tree is
    missing, are ignored.

    Yields:
        (prop_uri, value_uri, is_explicit) for the value and each ancestor
    """
    if not ontology.has_schema(record.schema_uri):
        return
    for annot in record.annotations:
        if not ontology.is_suggestible(record.schema_uri, annot.prop_uri, annot.group_nest):
            continue
        values = ontology.expand_ancestors(
            record.schema_uri, annot.prop_uri, annot.group_nest, annot.value_uri
        )
        if values is None:
            continue
        for value_uri in values:
            yield annot.prop_uri, value_uri, value_uri == annot.value_uri


def expand_record_targets(
    record: Record,
    ontology: OntologyProvider,
    key_to_target: Mapping[str, int],
) -> tuple[set[int], set[int]]:
    """Resolve a record's annotations to target ids.

    Pairs missing from the target table are skipped.

    Returns:
        Tuple of (all targets, directly annotated targets)
    """
    targets: set[int] = set()
    explicit: set[int] = set()
    for prop_uri, value_uri, is_explicit in iter_expanded_annotations(record, ontology):
        target = key_to_target.get(target_key(prop_uri, value_uri))
        if target is None:
            continue
        targets.add(target)
        if is_explicit:
            explicit.add(target)
    return targets, explicit


def update_annotation_targets(store: RecordStore, ontology: OntologyProvider) -> int:
    """Assign target ids to annotation pairs not yet in the table.

    New ids continue from the current maximum.

    Args:
        store: Record store holding curated records and the target table
        ontology: Provider used for suggestibility and ancestor expansion

    Returns:
        Number of targets added
    """
    key_to_target = {t.key: t.target for t in store.get_annotation_targets()}
    high = max(key_to_target.values(), default=0)
    added = 0

    for record_id in store.get_curated_record_ids():
        try:
            record = store.get_record(record_id)
        except StoreError as e:
            logger.warning(f"Cannot retrieve record {record_id}: {e}")
            continue
        if record is None or not record.annotations:
            continue

        for prop_uri, value_uri, _ in iter_expanded_annotations(record, ontology):
            key = target_key(prop_uri, value_uri)
            if key in key_to_target:
                continue
            high += 1
            store.add_annotation_target(high, prop_uri, value_uri)
            key_to_target[key] = high
            added += 1

    if added:
        logger.info(f"Added {added} annotation targets (total {len(key_to_target)})")
    return added
