"""Exactly-once release of a stream reader.

ReaderLease is the only place where readers are cancelled and unlocked.
LeasedIterator drives a read loop and hands the lease back on every exit
path: exhaustion, failure, aclose(), ``async with`` exit, and being dropped
unfinished (e.g. ``break`` out of a plain ``async for``), in which case the
release is scheduled on the event loop that created the iterator.

Example:
    >>> async with aiter(from_readable_stream(stream)) as chunks:
    ...     async for chunk in chunks:
    ...         if done_with(chunk):
    ...             break  # reader is cancelled and the stream unlocked on exit
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from pullstream.observability import get_logger

from .protocols import ReadMode

if TYPE_CHECKING:
    from types import TracebackType

    from .protocols import BaseReader, ReadableByteStream

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

_log = get_logger("pullstream.streams")


class ReadLoop(Protocol[T_co]):
    """One reading strategy. step() returns the next item or raises StopAsyncIteration."""

    async def step(self, request: Any = None) -> T_co: ...


class ReaderLease:
    """Ownership of a locked reader, released at most once."""

    __slots__ = ("_stream", "_reader", "_released")

    def __init__(self, stream: ReadableByteStream, reader: BaseReader) -> None:
        self._stream = stream
        self._reader = reader
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self, error: BaseException | None = None) -> bool:
        """Cancel the reader and unlock the stream. Returns False if already released.

        With an error the reader is cancelled with it as reason; otherwise an
        idle cancel tells the producer no more output is wanted. Failures
        raised while cancelling or unlocking are suppressed.
        """
        if self._released:
            return False
        self._released = True
        with suppress(Exception):
            if error is not None:
                await self._reader.cancel(error)
            else:
                await self._reader.cancel()
        unlocked = False
        with suppress(Exception):
            if self._stream.locked:
                _mark_handled(self._reader.closed)
                self._reader.release_lock()
            unlocked = True
        _log.bind(stream=type(self._stream).__name__).debug(
            "reader released", outcome="failed" if error is not None else "complete", unlocked=unlocked)
        return True


def _mark_handled(closed: object) -> None:
    """Retrieve a future rejection of reader.closed so it never surfaces as unhandled."""
    if isinstance(closed, asyncio.Future):
        closed.add_done_callback(_consume)


def _consume(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


def _release_abandoned(loop: asyncio.AbstractEventLoop, lease: ReaderLease) -> None:
    """Finalizer of an unfinished LeasedIterator: schedule the release on its loop."""
    if lease.released or loop.is_closed():
        return
    _log.warning("stream iterator dropped without aclose(), releasing reader")
    loop.call_soon_threadsafe(loop.create_task, lease.release())


class LeasedIterator(Generic[T]):
    """Async iterator over a read loop that owns the reader lease.

    Once released, every pull reports exhaustion. Requests passed with
    asend() reach the read loop (BYOB sizes or buffers).

    Attributes:
        mode: Reading strategy in effect
        fell_back: True when BYOB was requested but the default reader is in use
    """

    __slots__ = ("_loop", "_lease", "_finished", "_finalizer", "mode", "fell_back", "__weakref__")

    def __init__(self, loop: ReadLoop[T], lease: ReaderLease, *, mode: ReadMode = ReadMode.DEFAULT) -> None:
        self._loop = loop
        self._lease = lease
        self._finished = False
        self.mode = mode
        self.fell_back = False
        try:
            event_loop = asyncio.get_running_loop()
        except RuntimeError:
            self._finalizer = None
        else:
            self._finalizer = weakref.finalize(self, _release_abandoned, event_loop, lease)
            self._finalizer.atexit = False

    @property
    def finished(self) -> bool:
        return self._finished

    def __aiter__(self) -> LeasedIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.asend(None)

    async def asend(self, request: Any) -> T:
        if self._finished:
            raise StopAsyncIteration
        try:
            return await self._loop.step(request)
        except StopAsyncIteration:
            await self._finish(None)
            raise
        except BaseException as exc:
            await self._finish(exc)
            raise

    async def aclose(self) -> None:
        """Stop early: idle-cancel the reader and unlock the stream."""
        await self._finish(None)

    async def __aenter__(self) -> LeasedIterator[T]:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                        exc_tb: TracebackType | None) -> None:
        await self.aclose()

    async def _finish(self, error: BaseException | None) -> None:
        self._finished = True
        if self._finalizer is not None:
            self._finalizer.detach()
        await self._lease.release(error)
