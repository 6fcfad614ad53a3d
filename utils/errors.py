"""
utils/errors.py
---------------
Exception hierarchy for the data-access layer.

"Not found" is never an exception: single-entity lookups return None.
"""

from typing import Optional


class DataAccessLayerError(Exception):
    """Base class for every error raised by this project."""


class DataAccessError(DataAccessLayerError):
    """
    A failure reported by the database driver (connectivity, constraint
    violation, timeout, ...). The driver exception is kept as `original`
    and chained as `__cause__`.
    """

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class UnexpectedRowCountError(DataAccessError):
    """A single/first query returned a row count its contract forbids."""


class ConflictError(DataAccessLayerError):
    """An active record with the same unique key already exists."""


class InvalidArgumentError(DataAccessLayerError, ValueError):
    """Caller input rejected locally, before any SQL is sent."""


class ConfigurationError(DataAccessLayerError):
    """A required setting is missing or unusable."""
