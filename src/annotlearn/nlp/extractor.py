"""Text block extraction for fingerprinting.

A block is a part-of-speech tagged fragment written in bracket notation,
for example "(NN kinase)" or "(NP (JJ human) (NN liver))". Each distinct
block becomes one fingerprint id.

The spaCy extractor requires the optional "nlp" extra:
    pip install annotlearn[nlp]
    python -m spacy download en_core_web_sm
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Iterable

from annotlearn.constants import (
    BLOCK_BLACKLIST,
    BLOCK_BLACKLIST_PREFIXES,
    BLOCK_CACHE_SIZE,
    MAX_BLOCK_LENGTH,
    MAX_SENTENCE_WORDS,
    SKIPPED_BLOCK_TAGS,
)
from annotlearn.exceptions import ExtractorError

logger = logging.getLogger(__name__)


def approve_block(block: str) -> bool:
    """Whether a block is worth keeping as a fingerprint.

    Overlong, blacklisted and number/list-marker blocks are rejected.
    """
    if len(block) > MAX_BLOCK_LENGTH:
        return False
    if block.lower() in BLOCK_BLACKLIST:
        return False
    return not block.startswith(BLOCK_BLACKLIST_PREFIXES)


def format_block(tag: str, words: Iterable[tuple[str, str]] | str) -> str:
    """Render a block in bracket notation.

    Example:
        >>> format_block("NN", "kinase")
        '(NN kinase)'
        >>> format_block("NP", [("JJ", "human"), ("NN", "liver")])
        '(NP (JJ human) (NN liver))'
    """
    if isinstance(words, str):
        return f"({tag} {words})"
    inner = " ".join(format_block(t, w) for t, w in words)
    return f"({tag} {inner})"


class TextBlockExtractor(ABC):
    """Turns text into its distinct approved blocks.

    Results for the most recently seen texts are cached, since the same
    text is often submitted repeatedly.
    """

    def __init__(self, cache_size: int = BLOCK_CACHE_SIZE):
        self.cache_size = cache_size
        self._cache: OrderedDict[str, list[str]] = OrderedDict()
        self._lock = threading.Lock()

    @abstractmethod
    def _extract(self, text: str) -> Iterable[str]:
        """Produce candidate blocks (duplicates and unapproved allowed)."""
        pass

    def extract(self, text: str) -> list[str]:
        """Extract approved, distinct blocks in first-seen order.

        Args:
            text: Free text

        Returns:
            List of blocks (empty for blank text)
        """
        if not text or not text.strip():
            return []

        with self._lock:
            if text in self._cache:
                self._cache.move_to_end(text)
                return list(self._cache[text])

        seen: dict[str, None] = {}
        for block in self._extract(text):
            if block not in seen and approve_block(block):
                seen[block] = None
        blocks = list(seen)

        with self._lock:
            self._cache[text] = blocks
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return list(blocks)

    def __call__(self, text: str) -> list[str]:
        return self.extract(text)


class SpacyBlockExtractor(TextBlockExtractor):
    """Block extractor backed by a spaCy pipeline.

    Emits one block per tagged token and one NP block per noun chunk.
    The pipeline is loaded on first use.
    """

    def __init__(self, model_name: str = "en_core_web_sm", cache_size: int = BLOCK_CACHE_SIZE):
        super().__init__(cache_size=cache_size)
        self.model_name = model_name
        self._nlp: Any = None
        self._load_lock = threading.Lock()

    def _get_nlp(self) -> Any:
        """Load the spaCy pipeline (lazy)."""
        with self._load_lock:
            if self._nlp is None:
                try:
                    import spacy
                except ImportError as e:
                    raise ExtractorError(
                        "spaCy is not installed. Install with: pip install annotlearn[nlp]"
                    ) from e
                try:
                    self._nlp = spacy.load(self.model_name, disable=["ner", "lemmatizer"])
                except OSError as e:
                    raise ExtractorError(
                        f"spaCy model '{self.model_name}' not found. "
                        f"Install with: python -m spacy download {self.model_name}"
                    ) from e
                logger.info(f"Loaded spaCy model {self.model_name}")
            return self._nlp

    def _split_long(self, text: str) -> list[str]:
        words = text.split()
        if len(words) <= MAX_SENTENCE_WORDS:
            return [text]
        return [
            " ".join(words[i:i + MAX_SENTENCE_WORDS])
            for i in range(0, len(words), MAX_SENTENCE_WORDS)
        ]

    def _extract(self, text: str) -> Iterable[str]:
        nlp = self._get_nlp()
        for chunk in self._split_long(text):
            doc = nlp(chunk)
            for token in doc:
                if token.is_space or token.tag_ in SKIPPED_BLOCK_TAGS:
                    continue
                yield format_block(token.tag_, token.text)
            for span in doc.noun_chunks:
                words = [(t.tag_, t.text) for t in span if not t.is_space]
                if len(words) > 1:
                    yield format_block("NP", words)
