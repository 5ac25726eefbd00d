from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(slots=True, frozen=True)
class Result(Generic[T]):
    """Success/failure pair returned by every facade operation."""

    value: T | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return str(self.error) or type(self.error).__name__

    def fold(self, on_success: Callable[[T], U], on_failure: Callable[[Exception], U]) -> U:
        if self.error is not None:
            return on_failure(self.error)
        return on_success(self.value)  # type: ignore[arg-type]

