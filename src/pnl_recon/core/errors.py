"""
Failure kinds raised by the engine.

Data-quality problems never raise: they produce empty or partial results.
Only malformed calls and storage failures surface as exceptions.
"""

import numbers


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidFilterError(EngineError, ValueError):
    """A filter argument violates the call contract (e.g. month 13)."""


class UnknownCountryError(EngineError, KeyError):
    """No rate table entry exists for the requested country code."""

    def __init__(self, country_code: str):
        super().__init__(country_code)
        self.country_code = country_code

    def __str__(self) -> str:
        return f"No rates configured for country {self.country_code!r}"


class StorageUnavailable(EngineError):
    """
    The storage collaborator could not deliver data.

    Callers may retry the fetch; the engine itself never retries.
    """

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        message = f"Storage unavailable for {source}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


def validate_month(month: int | None) -> int | None:
    """Return ``month`` as a plain int (or None) if it is 1-12, else raise."""
    if month is None:
        return None
    if isinstance(month, bool) or not isinstance(month, numbers.Integral):
        raise InvalidFilterError(f"Month filter must be an int 1-12, got {month!r}")
    if not 1 <= month <= 12:
        raise InvalidFilterError(f"Month filter must be between 1 and 12, got {month}")
    return int(month)
