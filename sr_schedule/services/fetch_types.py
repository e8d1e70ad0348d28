"""
Shared result and error types used across the feed fetching pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar


T = TypeVar("T")


class FetchError(Exception):
    """Base class for feed failures, carries a human-readable cause."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(FetchError):
    """Network unreachable, timeout or HTTP error status"""


class ParseError(FetchError):
    """Malformed document or unexpected structure"""


class DataQualityError(FetchError):
    """A single record is missing a required field; the record is skipped"""


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """Either the fetched entities or the error that aborted the call."""
    items: tuple[T, ...] = ()
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, items) -> FetchResult[T]:
        return cls(items=tuple(items))

    @classmethod
    def failure(cls, error: FetchError) -> FetchResult[T]:
        return cls(error=error)


__all__ = [
    "FetchError",
    "TransportError",
    "ParseError",
    "DataQualityError",
    "FetchResult",
]
