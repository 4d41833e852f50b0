"""Prefix operator."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Callable, TypeVar

from pullstream.sequence import AsyncSequence, closing_iterator

T = TypeVar("T")


class TakeSequence(AsyncSequence[T]):
    """Yields at most count items, then closes the upstream iterator.

    Closing upstream is what lets a stream-backed source release its reader
    before the stream itself has ended.
    """

    __slots__ = ("_source", "_count")

    def __init__(self, source: AsyncSequence[T], count: int) -> None:
        if count < 0:
            raise ValueError(f"count must not be negative, got {count}")
        self._source = source
        self._count = count

    async def __aiter__(self) -> AsyncIterator[T]:
        if self._count == 0:
            return
        taken = 0
        async with closing_iterator(self._source) as iterator:
            async for item in iterator:
                yield item
                taken += 1
                if taken >= self._count:
                    break


def take(count: int) -> Callable[[AsyncSequence[T]], TakeSequence[T]]:
    """Curried take for pipe()."""
    return lambda source: TakeSequence(source, count)
