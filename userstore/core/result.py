"""
userstore/core/result.py

Purpose: Uniform outcome of repository operations

- Success carries the value (which may legitimately be None)
- Failure carries a StoreFailure wrapping the original error
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Dict, Any

from userstore.core.exceptions import StoreFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Value-or-error returned by every UserRepository operation.
    """
    value: Optional[T] = None
    error: Optional[StoreFailure] = None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: StoreFailure) -> "Result[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def get_or_none(self) -> Optional[T]:
        """Value on success, None on failure."""
        return self.value if self.is_success else None

    def get_or_default(self, default: T) -> T:
        return self.value if self.is_success else default

    def unwrap(self) -> T:
        """
        Returns the value or raises the wrapped StoreFailure.
        """
        if self.error is not None:
            raise self.error
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        """
        Shape used when an outcome is logged or handed to an API layer.
        """
        if self.is_success:
            return {"success": True, "value": self.value}
        return {
            "success": False,
            "error": self.error.message,
            "code": self.error.code,
            "details": self.error.details,
        }
