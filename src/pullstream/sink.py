"""Push-to-pull buffer used to re-expose pushed values as pulled items.

Push producers (observables) deliver values on their own schedule, possibly
synchronously inside subscribe(). AsyncSink queues every push and hands the
entries out one per pull, in push order.

Example:
    >>> sink = AsyncSink[int]()
    >>> sink.write(1); sink.write(2); sink.end()
    >>> [x async for x in sink]
    [1, 2]
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

_END = object()


@dataclass(frozen=True, slots=True)
class _Failure:
    error: BaseException


class AsyncSink(Generic[T]):
    """Unbounded queue of pushed values, errors and an end marker.

    write/error/end never block. Pushes after error() or end() are ignored.
    Once the end marker or an error has been consumed, every later pull
    reports exhaustion.
    """

    __slots__ = ("_queue", "_closed", "_exhausted")

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        """Whether end() or error() has been pushed."""
        return self._closed

    def write(self, value: T) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    def error(self, error: BaseException) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_Failure(error))

    def end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def __aiter__(self) -> AsyncSink[T]:
        return self

    async def __anext__(self) -> T:
        if self._exhausted:
            raise StopAsyncIteration
        entry = await self._queue.get()
        if entry is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(entry, _Failure):
            self._exhausted = True
            raise entry.error
        return entry  # type: ignore[return-value]
