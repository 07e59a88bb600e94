"""
Explicit success/failure results for storage reads and writes.

Read paths that must never fail the page (analytics aggregation, labels)
return a Result from their fetch layer. The caller picks the fallback:

    result = fetch_event_rows(session, date_range)
    rows = result.unwrap_or([])
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: str
    exc: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]

__all__ = ["Ok", "Err", "Result"]
