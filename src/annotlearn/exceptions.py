"""Custom exceptions for annotlearn.

Each exception type represents a category of error.
Insufficient training signal is never an exception; the statistics
engine returns None for it and the workers publish a blank model.
"""


class AnnotLearnError(Exception):
    """Base exception for all annotlearn errors."""

    pass


class StoreError(AnnotLearnError):
    """Raised when the persistence layer fails."""

    pass


class RecordNotFoundError(StoreError):
    """Raised when a requested record doesn't exist."""

    pass


class ConfigError(AnnotLearnError):
    """Raised when configuration is invalid or missing."""

    pass


class OntologyError(AnnotLearnError):
    """Raised when an ontology definition cannot be loaded."""

    pass


class ExtractorError(AnnotLearnError):
    """Raised when the text block extractor is unavailable or fails."""

    pass
