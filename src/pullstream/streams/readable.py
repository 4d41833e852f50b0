"""In-process readable byte stream with reader locking.

ReadableStream turns any sync or async iterable of bytes-like chunks (or an
asyncio.StreamReader) into a stream that implements the reader protocols:
one reader at a time, default and BYOB reads, cancel, and a ``closed``
future per reader.

Example:
    >>> stream = ReadableStream([b"hello ", b"world"])
    >>> [bytes(c) async for c in stream]
    [b'hello ', b'world']
    >>>
    >>> stream = ReadableStream.from_reader(asyncio_reader)
    >>> async with aiter(from_readable_stream(stream, mode="byob")) as it:
    ...     header = await it.asend(8)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Any, Union

from pullstream.errors import StreamLockedError

from .lease import LeasedIterator
from .protocols import ReadMode, ReadResult

BytesLike = Union[bytes, bytearray, memoryview]


class ReadableStream:
    """Byte stream fed by an iterable of chunks.

    Args:
        source: Sync or async iterable of bytes-like chunks (empty chunks are skipped)
        byob: Whether get_reader(mode="byob") is supported
    """

    __slots__ = ("_source", "_iterator", "_pending", "_reader", "_byob", "_done", "_error")

    def __init__(self, source: Iterable[BytesLike] | AsyncIterable[BytesLike], *, byob: bool = True) -> None:
        self._source = source
        self._iterator: Iterator[BytesLike] | AsyncIterator[BytesLike] | None = None
        self._pending: memoryview | None = None
        self._reader: _StreamReaderBase | None = None
        self._byob = byob
        self._done = False
        self._error: BaseException | None = None

    @classmethod
    def from_reader(cls, reader: asyncio.StreamReader, chunk_size: int | None = None) -> ReadableStream:
        """Adapt an asyncio.StreamReader. chunk_size defaults to settings stream.chunk_size."""
        if chunk_size is None:
            from pullstream.config import get_settings
            chunk_size = get_settings().stream.chunk_size

        async def chunks() -> AsyncIterator[bytes]:
            while chunk := await reader.read(chunk_size):
                yield chunk

        return cls(chunks())

    @property
    def locked(self) -> bool:
        return self._reader is not None

    @property
    def supports_byob(self) -> bool:
        return self._byob

    def get_reader(self, mode: str | None = None) -> DefaultStreamReader | ByobStreamReader:
        """Lock the stream to a new reader.

        Raises:
            ValueError: unknown mode
            TypeError: mode="byob" on a stream created with byob=False
            StreamLockedError: the stream is already locked
        """
        if mode not in (None, ReadMode.DEFAULT, ReadMode.BYOB):
            raise ValueError(f"Unknown reader mode: {mode!r}")
        if mode == ReadMode.BYOB and not self._byob:
            raise TypeError("stream does not support byob readers")
        if self.locked:
            raise StreamLockedError("stream is already locked to a reader", operation="get_reader")
        reader = ByobStreamReader(self) if mode == ReadMode.BYOB else DefaultStreamReader(self)
        self._reader = reader
        return reader

    async def cancel(self, reason: BaseException | None = None) -> None:
        """Cancel an unlocked stream, discarding pending and future chunks."""
        if self.locked:
            raise StreamLockedError("cannot cancel a locked stream", operation="cancel")
        await self._cancel(reason)

    def __aiter__(self) -> LeasedIterator[Any]:
        from .reader import from_readable_stream

        return from_readable_stream(self).__aiter__()

    # ─────────────────────────────────────────────────────────────────
    # Reader-facing internals
    # ─────────────────────────────────────────────────────────────────

    async def _next_chunk(self) -> memoryview | None:
        """Pending remainder or the next non-empty source chunk; None once ended."""
        if self._pending is not None:
            chunk, self._pending = self._pending, None
            return chunk
        if self._error is not None:
            raise self._error
        while not self._done:
            try:
                raw = await self._pull()
            except Exception as exc:
                self._error = exc
                self._done = True
                if self._reader is not None:
                    self._reader._settle(exc)
                raise
            if raw is None:
                self._finish()
                break
            chunk = memoryview(raw).cast("B") if not isinstance(raw, memoryview) or raw.format != "B" else raw
            if chunk.nbytes:
                return chunk
        return None

    async def _pull(self) -> BytesLike | None:
        """Next raw chunk from the source, or None when it is exhausted."""
        if self._iterator is None:
            if isinstance(self._source, AsyncIterable):
                self._iterator = aiter(self._source)
            else:
                self._iterator = iter(self._source)
        if isinstance(self._iterator, AsyncIterator):
            return await anext(self._iterator, None)
        return next(self._iterator, None)

    def _finish(self) -> None:
        self._done = True
        if self._reader is not None:
            self._reader._settle(None)

    async def _cancel(self, reason: BaseException | None) -> None:
        self._pending = None
        already_done, self._done = self._done, True
        iterator, self._iterator = self._iterator, None
        if not already_done and iterator is not None:
            if (aclose := getattr(iterator, "aclose", None)) is not None:
                await aclose()
            elif (close := getattr(iterator, "close", None)) is not None:
                close()
        if self._reader is not None:
            self._reader._settle(None)

    def _release(self, reader: _StreamReaderBase) -> None:
        if self._reader is reader:
            self._reader = None


class _StreamReaderBase:
    """Lock holder: cancel, release_lock and the closed future."""

    __slots__ = ("_stream", "_closed", "_outcome", "_settled")

    def __init__(self, stream: ReadableStream) -> None:
        self._stream: ReadableStream | None = stream
        self._closed: asyncio.Future[None] | None = None
        self._outcome: BaseException | None = None
        self._settled = False

    @property
    def closed(self) -> asyncio.Future[None]:
        """Resolves when the stream ends or is cancelled; rejects on error or release_lock()."""
        if self._closed is None:
            self._closed = asyncio.get_running_loop().create_future()
            if self._settled:
                self._apply()
        return self._closed

    async def cancel(self, reason: BaseException | None = None) -> None:
        await self._locked_stream("cancel")._cancel(reason)

    def release_lock(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream._release(self)
        self._settle(StreamLockedError("reader released", operation="release_lock"))

    def _locked_stream(self, operation: str) -> ReadableStream:
        if self._stream is None:
            raise StreamLockedError("reader has been released", operation=operation)
        return self._stream

    def _settle(self, outcome: BaseException | None) -> None:
        if self._settled:
            return
        self._settled = True
        self._outcome = outcome
        if self._closed is not None:
            self._apply()

    def _apply(self) -> None:
        assert self._closed is not None
        if self._closed.done():
            return
        if self._outcome is None:
            self._closed.set_result(None)
        else:
            self._closed.set_exception(self._outcome)


class DefaultStreamReader(_StreamReaderBase):
    """Reader that returns chunks as bytes."""

    __slots__ = ()

    async def read(self) -> ReadResult[bytes]:
        chunk = await self._locked_stream("read")._next_chunk()
        if chunk is None:
            return ReadResult(True, None)
        return ReadResult(False, chunk.tobytes())


class ByobStreamReader(_StreamReaderBase):
    """Reader that copies stream bytes into the caller's view."""

    __slots__ = ()

    async def read(self, view: memoryview) -> ReadResult[memoryview]:
        """Fill at most len(view) bytes from the current chunk; returns the filled slice of view."""
        stream = self._locked_stream("read")
        target = view if view.format == "B" and view.ndim == 1 else view.cast("B")
        if not target.nbytes:
            raise ValueError("view must not be empty")
        chunk = await stream._next_chunk()
        if chunk is None:
            return ReadResult(True, target[:0])
        count = min(chunk.nbytes, target.nbytes)
        target[:count] = chunk[:count]
        if count < chunk.nbytes:
            stream._pending = chunk[count:]
        return ReadResult(False, target[:count])
