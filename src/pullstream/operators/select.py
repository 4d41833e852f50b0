"""Projection and filtering operators over (value, index)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Callable, TypeVar

from pullstream.sequence import AsyncSequence, Selector, closing_iterator, resolve

T = TypeVar("T")

Predicate = Callable[[Any, int], Any]


class SelectSequence(AsyncSequence[Any]):
    """Maps each item with selector(value, index); async selectors are awaited in order."""

    __slots__ = ("_source", "_selector")

    def __init__(self, source: AsyncSequence[Any], selector: Selector) -> None:
        self._source = source
        self._selector = selector

    async def __aiter__(self) -> AsyncIterator[Any]:
        index = 0
        async with closing_iterator(self._source) as iterator:
            async for item in iterator:
                yield await resolve(self._selector(item, index))
                index += 1


class WhereSequence(AsyncSequence[T]):
    """Keeps items for which predicate(value, index) is truthy.

    The index counts source items, not the items kept.
    """

    __slots__ = ("_source", "_predicate")

    def __init__(self, source: AsyncSequence[T], predicate: Predicate) -> None:
        self._source = source
        self._predicate = predicate

    async def __aiter__(self) -> AsyncIterator[T]:
        index = 0
        async with closing_iterator(self._source) as iterator:
            async for item in iterator:
                if await resolve(self._predicate(item, index)):
                    yield item
                index += 1


def select(selector: Selector) -> Callable[[AsyncSequence[Any]], SelectSequence]:
    """Curried select for pipe()."""
    return lambda source: SelectSequence(source, selector)


def where(predicate: Predicate) -> Callable[[AsyncSequence[T]], WhereSequence[T]]:
    """Curried where for pipe()."""
    return lambda source: WhereSequence(source, predicate)
