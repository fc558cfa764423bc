from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Generic
from typing import TypeVar

from teaserflow.core.exceptions import ErrorKind
from teaserflow.core.exceptions import TeaserflowError
from teaserflow.core.exceptions import user_message

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Typed success/failure of a component-level operation."""

    ok: bool
    data: T | None = None
    error_kind: ErrorKind | None = None
    message: str = ""
    field_errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def success(cls, data: T | None = None) -> "Outcome[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str | None = None,
        field_errors: dict[str, str] | None = None,
    ) -> "Outcome[T]":
        return cls(
            ok=False,
            error_kind=kind,
            message=message or user_message(kind),
            field_errors=dict(field_errors or {}),
        )

    @classmethod
    def from_error(cls, error: TeaserflowError) -> "Outcome[T]":
        return cls.failure(error.kind, user_message(error.kind, error.message))

    @classmethod
    def from_result(cls, result: Any) -> "Outcome[T]":
        """Converts an ApiResult into an Outcome carrying the same data or error."""
        if result.ok:
            return cls.success(result.data)
        return cls.failure(result.error_kind, result.message)
