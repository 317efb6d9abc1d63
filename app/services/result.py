from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None
    details: Any = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(
        error: str,
        code: str = "unknown",
        *,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, status_code=status_code, details=details)
