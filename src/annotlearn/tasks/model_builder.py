"""NLP model builder: text fingerprints -> annotation models."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from annotlearn.exceptions import StoreError
from annotlearn.models import ModelFamily
from annotlearn.targets import expand_record_targets
from annotlearn.tasks.builder import TrainingRows, WatermarkBuilder

logger = logging.getLogger(__name__)


def prune_fingerprints(
    counts: Mapping[int, int],
    rows: Sequence[Optional[Sequence[int]]],
    max_fingerprints: int,
) -> tuple[dict[int, int], list[Optional[list[int]]]]:
    """Cap the number of distinct fingerprints.

    Repeatedly drops every fingerprint sharing the lowest or the highest
    occurrence count, whichever is closer to its extreme (ties drop the
    highest), until at most max_fingerprints remain. Very rare and very
    common fingerprints carry the least resolving power.

    Args:
        counts: Occurrences per fingerprint
        rows: Sorted fingerprint rows (None rows pass through)
        max_fingerprints: Ceiling on distinct fingerprints

    Returns:
        Tuple of (surviving counts, rows filtered to the survivors)

    Example:
        >>> prune_fingerprints({1: 1, 2: 2, 3: 3}, [[1, 2, 3], [2, 3], [3]], 2)
        ({1: 1, 2: 2}, [[1, 2], [2], []])
    """
    survivors = dict(counts)
    num_rows = len(rows)

    while len(survivors) > max_fingerprints:
        low = min(survivors.values())
        high = max(survivors.values())
        if min(low, num_rows + 0.5 - low) < min(high, num_rows + 0.5 - high):
            elim = low
        else:
            elim = high
        survivors = {fp: n for fp, n in survivors.items() if n != elim}

    pruned = [
        None if row is None else sorted(fp for fp in row if fp in survivors)
        for row in rows
    ]
    return survivors, pruned


@dataclass
class NLPTrainingData:
    """Fingerprint rows and expanded targets for every usable record."""

    rows: list[list[int]] = field(default_factory=list)
    targets: list[set[int]] = field(default_factory=list)
    explicit: set[int] = field(default_factory=set)


class ModelBuilder(WatermarkBuilder):
    """Builds NLP models that predict annotations from record text."""

    name = "model-builder"
    family = ModelFamily.NLP

    def compile(
        self, record_ids: Sequence[int], key_to_target: Mapping[str, int]
    ) -> Optional[NLPTrainingData]:
        """Pull every curated record and turn it into a training row.

        Records that cannot be fetched, have no known schema, no
        fingerprint or no annotations are left out.
        """
        data = NLPTrainingData()
        fp_count: Counter[int] = Counter()

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
            if not self.ontology.has_schema(record.schema_uri) or not record.fingerprint:
                continue

            targets, explicit = expand_record_targets(record, self.ontology, key_to_target)
            row = sorted(set(record.fingerprint))
            fp_count.update(row)
            data.rows.append(row)
            data.targets.append(targets)
            data.explicit |= explicit

        before = len(fp_count)
        kept, data.rows = prune_fingerprints(fp_count, data.rows, self.settings.max_nlp_fingerprints)
        if len(kept) < before:
            logger.info(f"Pruned fingerprints from {before} to {len(kept)}")
        logger.info(f"Compiled {len(data.rows)} training rows")
        return data

    def prepare(self, training: NLPTrainingData, target: int) -> TrainingRows:
        return TrainingRows(
            rows=training.rows,
            active=[target in targets for targets in training.targets],
            is_explicit=target in training.explicit,
        )

    def after_target(self, count: int) -> None:
        if count % self.settings.pause_every == 0:
            self.pause_task(self.settings.pause_seconds)
