"""Explicit result types used instead of empty sentinel objects.

``Lookup`` distinguishes "not found" from "found with zero value";
``OperationResult`` carries success/failure for ledger writes whose
storage errors are reported rather than raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Optional value with an explicit found/missing state."""

    value: Optional[T] = None

    @classmethod
    def found(cls, value: T) -> Lookup[T]:
        return cls(value=value)

    @classmethod
    def missing(cls) -> Lookup[T]:
        return cls(value=None)

    @property
    def is_found(self) -> bool:
        return self.value is not None

    def map(self, fn: Callable[[T], R], default: R) -> R:
        """Apply *fn* to the value, or return *default* when missing."""
        if self.value is None:
            return default
        return fn(self.value)

    def unwrap(self) -> T:
        if self.value is None:
            raise LookupError("Lookup has no value.")
        return self.value

    def __bool__(self) -> bool:
        return self.is_found


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a write whose failure must be checked by the caller."""

    ok: bool
    reason: str = ""
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, **details) -> OperationResult:
        return cls(ok=True, details=details)

    @classmethod
    def failure(cls, reason: str, **details) -> OperationResult:
        return cls(ok=False, reason=reason, details=details)

    def __bool__(self) -> bool:
        return self.ok
