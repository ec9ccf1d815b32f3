"""Result/failure wrapper returned by the caller-facing service."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from actionforge.core.errors import ErrorKind, ForgeError

T = TypeVar("T")


class Outcome(BaseModel, Generic[T]):
    """Either a value (``ok``) or a classified error message, never both."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    value: T | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: ForgeError) -> Outcome[T]:
        return cls(
            ok=False,
            error=exc.message,
            error_kind=exc.kind,
            status_code=exc.status_code,
        )
