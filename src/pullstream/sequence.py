"""Uniform pull-based sequence base.

Every adapter and operator in pullstream is an AsyncSequence: an async
iterable whose iterator hands out one item per ``__anext__`` call, raises
StopAsyncIteration once exhausted (and on every pull after that), or raises
the failure of its source.

Example:
    >>> seq = AsyncSequence.of(1, 2, 3)
    >>> await seq.to_list()
    [1, 2, 3]
    >>> doubled = seq.pipe(select(lambda x, i: x * 2))
    >>> await doubled.to_list()
    [2, 4, 6]
    >>> await AsyncSequence.wrap(fetch_user()).to_list()  # awaitable → one item
    [User(...)]
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar, overload

if TYPE_CHECKING:
    from .compose import Sink

T = TypeVar("T")
R = TypeVar("R")
S = TypeVar("S")

# Selector: (value, index) → result, sync or async
Selector = Callable[[Any, int], Any]

# Operator: previous sequence → next source (normalized by pipe)
Operator = Callable[["AsyncSequence[Any]"], Any]


def identity(value: T, index: int) -> T:
    """Default selector: pass the value through unchanged."""
    return value


async def resolve(value: Awaitable[T] | T) -> T:
    """Await value if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


@asynccontextmanager
async def closing_iterator(iterable: AsyncIterable[T]) -> AsyncIterator[AsyncIterator[T]]:
    """Open an iterator over iterable and aclose() it on every exit path.

    Stream-backed iterators release their reader in aclose(), so consumers
    that may stop early should iterate through this.
    """
    iterator = aiter(iterable)
    try:
        yield iterator
    finally:
        if (aclose := getattr(iterator, "aclose", None)) is not None:
            await aclose()


class AsyncSequence(ABC, Generic[T]):
    """Base for all pull-based sequences.

    Subclasses implement ``__aiter__``, usually as an async generator. Each
    call starts an independent iteration; the chain itself never changes
    after construction.
    """

    __slots__ = ()

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[T]:
        """Start a new iteration."""

    # ─────────────────────────────────────────────────────────────────
    # Traversal
    # ─────────────────────────────────────────────────────────────────

    async def for_each(self, action: Callable[[T, int], Awaitable[object] | object]) -> None:
        """Call action(value, index) for every item, awaiting it before the next pull."""
        index = 0
        async with closing_iterator(self) as iterator:
            async for item in iterator:
                await resolve(action(item, index))
                index += 1

    async def to_list(self) -> list[T]:
        """Collect every item into a list."""
        items: list[T] = []
        async with closing_iterator(self) as iterator:
            async for item in iterator:
                items.append(item)
        return items

    # ─────────────────────────────────────────────────────────────────
    # Composition
    # ─────────────────────────────────────────────────────────────────

    @overload
    def pipe(self) -> AsyncSequence[T]: ...
    @overload
    def pipe(self, *steps: Operator) -> AsyncSequence[Any]: ...
    @overload
    def pipe(self, *steps: Operator | Sink, end: bool = True) -> AsyncSequence[Any] | Awaitable[Any]: ...

    def pipe(self, *steps: Any, end: bool = True) -> Any:
        """Apply operators left to right, or drain into a sink.

        Each callable step receives the previous sequence and its result is
        normalized with wrap(). A sink step (anything with write()) must be
        last: the returned awaitable drains everything before it into the
        sink and resolves to the sink, closing it unless end=False.

        Example:
            >>> seq.pipe(where(lambda x, i: x > 1), select(lambda x, i: x * 10))
            >>> await seq.pipe(select(encode), writer, end=False)
        """
        from .compose import pipe

        return pipe(self, steps, end=end)

    async def pipe_to(self, sink: S, *, end: bool = True) -> S:
        """Drain this sequence into sink; close it afterwards unless end=False."""
        from .compose import drain

        return await drain(self, sink, end=end)

    def __rshift__(self, operator: Operator) -> AsyncSequence[Any]:
        """Chain an operator: seq >> op."""
        return self.pipe(operator)

    # ─────────────────────────────────────────────────────────────────
    # Constructors
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def wrap(source: object) -> AsyncSequence[Any]:
        """Normalize any value into a sequence. Never fails.

        Sequences are returned unchanged; text and bytes become one item;
        iterables, awaitables, observables and array-likes are adapted;
        anything else becomes a single item.
        """
        from .sources import normalize

        return normalize(source)

    @staticmethod
    def from_source(source: object, selector: Selector | None = None) -> AsyncSequence[Any]:
        """Adapt source applying selector(value, index) to each item.

        Raises:
            UnsupportedInputError: source is not iterable, awaitable,
                observable, array-like or an async iterator.
        """
        from .sources import adapt

        return adapt(source, selector or identity)

    @staticmethod
    def of(*values: R) -> AsyncSequence[R]:
        """Sequence yielding exactly the given values, in argument order."""
        from .sources import OfSequence

        return OfSequence(values)
