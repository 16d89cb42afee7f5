"""Errors raised while signing a request."""

from typing import Optional


class SigningError(Exception):
    """Base class for all signing failures."""


class ConfigurationError(SigningError, ValueError):
    """A required credential or request field is missing or unusable."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class EncodingError(SigningError, ValueError):
    """A body or header cannot be represented as bytes for hashing."""
