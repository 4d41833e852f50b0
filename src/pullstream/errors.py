"""Standardized errors for sequence adapters.

Provides error codes and a structured error model carried by the exceptions
the core raises itself. Failures coming from sources, awaitables, observables
or selectors are never wrapped: they propagate to the consumer verbatim.
Failures while releasing a stream reader are suppressed (ErrorCode.RELEASE_FAILURE
names them for documentation and classification only).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Self, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# JSON type aliases - using Any for recursive slots to avoid Pydantic resolution issues
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]


class ErrorCode(StrEnum):
    """Error codes for sequence failures."""
    INPUT_UNSUPPORTED = "INPUT_UNSUPPORTED"
    INVALID_REQUEST = "INVALID_REQUEST"
    STREAM_LOCKED = "STREAM_LOCKED"
    SOURCE_FAILURE = "SOURCE_FAILURE"
    RELEASE_FAILURE = "RELEASE_FAILURE"


class SequenceError(BaseModel):
    """Structured description of a failure raised by the core.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        operation: Operation that raised (e.g. "from_source", "byob.read")
        details: Optional extra information (e.g. the offending type)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Sequence Error",
            "examples": [{
                "message": "Input type not supported",
                "code": "INPUT_UNSUPPORTED",
                "operation": "from_source",
                "details": "int",
            }],
        },
    )

    message: Annotated[str, Field(min_length=1, description="Human-readable error message")]
    code: ErrorCode = Field(default=ErrorCode.SOURCE_FAILURE, description="Machine-readable error classification")
    operation: str = Field(default="", description="Operation that raised the error")
    details: str | None = Field(default=None, description="Optional detailed error info")

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        return str(v) if isinstance(v, Exception) else v

    @computed_field
    @property
    def is_usage_error(self) -> bool:
        """Whether the caller passed something the core cannot work with."""
        return self.code in (ErrorCode.INPUT_UNSUPPORTED, ErrorCode.INVALID_REQUEST, ErrorCode.STREAM_LOCKED)

    @classmethod
    def create(
        cls,
        message: str,
        code: ErrorCode = ErrorCode.SOURCE_FAILURE,
        *,
        operation: str = "",
        details: str | None = None,
    ) -> Self:
        """Factory method for construction."""
        return cls(message=message, code=code, operation=operation, details=details)

    def render(self) -> str:
        """Format as a single line: [CODE] operation: message (details)."""
        op = f"{self.operation}: " if self.operation else ""
        extra = f" ({self.details})" if self.details else ""
        return f"[{self.code}] {op}{self.message}{extra}"

    __str__ = render


class SequenceException(Exception):
    """Exception wrapping a SequenceError for raising."""

    code: ErrorCode = ErrorCode.SOURCE_FAILURE

    def __init__(self, error: SequenceError | str, *, operation: str = "", details: str | None = None) -> None:
        if isinstance(error, str):
            error = SequenceError.create(error, self.code, operation=operation, details=details)
        self.error = error
        super().__init__(error.message)


class UnsupportedInputError(SequenceException, TypeError):
    """The strict constructor received a value matching no known source shape."""

    code = ErrorCode.INPUT_UNSUPPORTED

    @classmethod
    def for_value(cls, value: object, operation: str = "from_source") -> Self:
        return cls("Input type not supported", operation=operation, details=type(value).__name__)


class InvalidReadRequestError(SequenceException, TypeError):
    """A buffer-reuse read was requested with something other than a size or writable buffer."""

    code = ErrorCode.INVALID_REQUEST


class StreamLockedError(SequenceException, RuntimeError):
    """A reader was requested from a locked stream, or a released reader was used."""

    code = ErrorCode.STREAM_LOCKED
