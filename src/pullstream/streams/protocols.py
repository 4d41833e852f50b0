"""Shapes of the byte-oriented readable streams the reader adapter consumes.

A stream hands out at most one reader at a time and reports whether it is
locked. Default readers return freshly produced chunks; BYOB ("bring your
own buffer") readers fill a caller-supplied view and return the filled
region, which may live in different storage than the view passed in.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class ReadMode(StrEnum):
    """Reading strategy of a stream iteration."""
    DEFAULT = "default"
    BYOB = "byob"


@dataclass(frozen=True, slots=True)
class ReadResult(Generic[T]):
    """Outcome of a single reader.read() call."""

    done: bool
    value: T | None = None


@runtime_checkable
class BaseReader(Protocol):
    """Lock holder shared by both reader kinds."""

    @property
    def closed(self) -> Awaitable[None]:
        """Settles when the stream closes; rejects on stream error or lock release."""
        ...

    async def cancel(self, reason: BaseException | None = None) -> None: ...

    def release_lock(self) -> None: ...


@runtime_checkable
class DefaultReader(BaseReader, Protocol[T_co]):
    async def read(self) -> ReadResult[T_co]: ...


@runtime_checkable
class ByobReader(BaseReader, Protocol):
    async def read(self, view: memoryview) -> ReadResult[memoryview]: ...


@runtime_checkable
class ReadableByteStream(Protocol):
    """Stream that can be locked to one reader at a time."""

    @property
    def locked(self) -> bool: ...

    def get_reader(self, mode: str | None = None) -> Any:
        """Acquire the lock. mode="byob" asks for a ByobReader and may raise if unsupported."""
        ...
