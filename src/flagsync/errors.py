"""Structured success/failure results returned across the public API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class FlagSyncError:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either ``data`` or ``error`` is set, never both."""

    data: T | None = None
    error: FlagSyncError | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.error is None):
            raise ValueError("Result requires exactly one of data or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise ResultError(self.error)
        return self.data  # type: ignore[return-value]


class ResultError(RuntimeError):
    def __init__(self, error: FlagSyncError) -> None:
        super().__init__(str(error))
        self.error = error


def ok(data: T) -> Result[T]:
    """Build a success result."""
    return Result(data=data)


def err(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    retryable: bool = False,
) -> Result[Any]:
    """Build a failure result."""
    return Result(
        error=FlagSyncError(
            code=code,
            message=message,
            details=details or {},
            retryable=retryable,
        )
    )


def is_retryable_status(status: int | None) -> bool:
    """5xx and missing statuses (timeouts, network) are retryable; 4xx are not."""
    if status is None:
        return True
    return status >= 500
