"""Text processing for annotlearn.

Provides block extraction; the spaCy backend is optional.
"""

from annotlearn.nlp.extractor import (
    SpacyBlockExtractor,
    TextBlockExtractor,
    approve_block,
    format_block,
)

__all__ = [
    "SpacyBlockExtractor",
    "TextBlockExtractor",
    "approve_block",
    "format_block",
]
