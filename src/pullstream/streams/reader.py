"""Sequences over byte-oriented readable streams.

Two reading strategies:

DEFAULT
    One reader.read() per pull; each chunk is yielded as produced.

BYOB (bring your own buffer)
    Each pull carries a request, sent with ``asend()``: a byte count (a fresh
    bytearray of that size is allocated) or a writable buffer to fill in place.
    Partial reads are accumulated until the buffer is full or the stream
    ends, and only then is the filled region handed out. A plain pull (no
    request) reads ``read_size`` bytes.

If the stream cannot provide a BYOB reader, iteration falls back to DEFAULT
for its whole lifetime.

Example:
    >>> chunks = from_readable_stream(stream, mode="byob")
    >>> async with aiter(chunks) as it:
    ...     header = await it.asend(16)             # exactly 16 bytes unless the stream ends
    ...     body = await it.asend(bytearray(4096))  # reuses caller's buffer
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Generic, TypeVar

from pullstream.config import get_settings
from pullstream.errors import InvalidReadRequestError
from pullstream.observability import get_logger
from pullstream.sequence import AsyncSequence

from .lease import LeasedIterator, ReaderLease
from .protocols import ByobReader, DefaultReader, ReadableByteStream, ReadMode

T = TypeVar("T")

_log = get_logger("pullstream.streams")


class ReaderState(StrEnum):
    """Lifecycle of a read loop."""
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = frozenset({ReaderState.DONE, ReaderState.FAILED})


# ─────────────────────────────────────────────────────────────────────────────
# Read loops
# ─────────────────────────────────────────────────────────────────────────────


class DefaultReadLoop(Generic[T]):
    """Yields each chunk the reader produces, verbatim."""

    __slots__ = ("_reader", "state")

    def __init__(self, reader: DefaultReader[T]) -> None:
        self._reader = reader
        self.state = ReaderState.UNINITIALIZED

    async def step(self, request: Any = None) -> T:
        if self.state in _TERMINAL:
            raise StopAsyncIteration
        self.state = ReaderState.ACTIVE
        try:
            result = await self._reader.read()
        except BaseException:
            self.state = ReaderState.FAILED
            raise
        if result.done:
            self.state = ReaderState.DONE
            raise StopAsyncIteration
        return result.value  # type: ignore[return-value]


class ByobReadLoop:
    """Fills caller-requested regions, one complete region per pull.

    The first request primes the loop (UNINITIALIZED → ACTIVE) before any read.
    A region is returned once it is full or the stream has ended; when the
    stream ends mid-fill the filled part is returned and the next pull
    reports exhaustion.
    """

    __slots__ = ("_reader", "_read_size", "_ended", "state")

    def __init__(self, reader: ByobReader, read_size: int) -> None:
        self._reader = reader
        self._read_size = read_size
        self._ended = False
        self.state = ReaderState.UNINITIALIZED

    async def step(self, request: Any = None) -> memoryview:
        if self.state in _TERMINAL:
            raise StopAsyncIteration
        if self._ended:
            self.state = ReaderState.DONE
            raise StopAsyncIteration
        target = self._claim(request)
        self.state = ReaderState.ACTIVE
        try:
            done, region = await self._fill(target)
        except BaseException:
            self.state = ReaderState.FAILED
            raise
        if done:
            if not region.nbytes:
                self.state = ReaderState.DONE
                raise StopAsyncIteration
            self._ended = True
        return region

    def _claim(self, request: Any) -> memoryview:
        """Turn a request into the byte view to fill."""
        if request is None:
            request = self._read_size
        if isinstance(request, bool):
            raise InvalidReadRequestError("read request must be a size or a writable buffer",
                                          operation="byob.read", details="bool")
        if isinstance(request, int):
            if request < 0:
                raise InvalidReadRequestError("read size must not be negative",
                                              operation="byob.read", details=str(request))
            return memoryview(bytearray(request))
        try:
            view = _byte_view(request)
        except TypeError:
            raise InvalidReadRequestError("read request must be a size or a writable buffer",
                                          operation="byob.read", details=type(request).__name__) from None
        if view.readonly:
            raise InvalidReadRequestError("read buffer must be writable",
                                          operation="byob.read", details=type(request).__name__)
        return view

    async def _fill(self, target: memoryview) -> tuple[bool, memoryview]:
        """Read into target until full or the stream ends. Returns (done, filled region)."""
        size = target.nbytes
        offset = 0
        done = False
        while offset < size and not done:
            result = await self._reader.read(target[offset:size])
            done = result.done
            value = result.value
            if value is None:
                continue
            if value.obj is not target.obj:
                # filled region came back in different storage; keep filling that storage
                target = _byte_view(value.obj)[:size]
            offset += value.nbytes
        return done, target[:offset]


def _byte_view(buffer: Any) -> memoryview:
    view = memoryview(buffer)
    if view.format == "B" and view.ndim == 1:
        return view
    return view.cast("B")


# ─────────────────────────────────────────────────────────────────────────────
# Sequences
# ─────────────────────────────────────────────────────────────────────────────


class ReadableStreamSequence(AsyncSequence[T]):
    """Sequence of the chunks a stream's default reader produces.

    Each iteration locks the stream to a new reader until the iterator is
    exhausted, fails or is closed.
    """

    __slots__ = ("_stream",)

    def __init__(self, stream: ReadableByteStream) -> None:
        self._stream = stream

    @property
    def stream(self) -> ReadableByteStream:
        return self._stream

    def __aiter__(self) -> LeasedIterator[T]:
        reader = self._stream.get_reader()
        return LeasedIterator(DefaultReadLoop(reader), ReaderLease(self._stream, reader))


class ReadableByteStreamSequence(ReadableStreamSequence[memoryview]):
    """Sequence of filled byte regions read through a BYOB reader."""

    __slots__ = ("_read_size",)

    def __init__(self, stream: ReadableByteStream, *, read_size: int | None = None) -> None:
        super().__init__(stream)
        self._read_size = read_size

    def __aiter__(self) -> LeasedIterator[memoryview]:
        try:
            reader = self._stream.get_reader(mode="byob")
        except Exception as exc:
            _log.debug("byob reader unavailable, falling back to default reader",
                       stream=type(self._stream).__name__, error=str(exc))
            iterator = super().__aiter__()
            iterator.fell_back = True
            return iterator
        read_size = self._read_size or get_settings().stream.read_size
        return LeasedIterator(ByobReadLoop(reader, read_size), ReaderLease(self._stream, reader),
                              mode=ReadMode.BYOB)


def from_readable_stream(
    stream: ReadableByteStream,
    *,
    mode: str | ReadMode | None = None,
    read_size: int | None = None,
) -> ReadableStreamSequence[Any]:
    """Wrap a readable stream as a sequence.

    Args:
        stream: Stream exposing locked and get_reader()
        mode: None/"default" for chunk-by-chunk reads, "byob" for buffer-reuse reads
        read_size: BYOB size for pulls without a request (default: settings stream.read_size)
    """
    match mode:
        case None | ReadMode.DEFAULT:
            return ReadableStreamSequence(stream)
        case ReadMode.BYOB:
            return ReadableByteStreamSequence(stream, read_size=read_size)
        case _:
            raise ValueError(f"Unknown read mode: {mode!r}. Use 'default' or 'byob'")
