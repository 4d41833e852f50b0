"""Source classification and the adapters that turn sources into sequences.

An untyped value is inspected once, at the boundary, and mapped to a
SourceKind. Everything downstream dispatches on the kind through a fixed
adapter table and never re-inspects the value's shape.

Classification order (first match wins):
    SEQUENCE        already an AsyncSequence
    TEXT            str or bytes-like (one item, never split)
    ASYNC_ITERABLE  has __aiter__
    ITERABLE        has __iter__ and is not awaitable
    DEFERRED        awaitable (coroutine, Future, Task, __await__)
    OBSERVABLE      has a callable subscribe()
    ARRAY_LIKE      has __len__ and __getitem__
    ASYNC_ITERATOR  has __anext__ but no __aiter__
    SCALAR          anything else

Example:
    >>> classify([1, 2])
    <SourceKind.ITERABLE: 'iterable'>
    >>> classify("abc")
    <SourceKind.TEXT: 'text'>
    >>> classify("abc", text_as_item=False)
    <SourceKind.ITERABLE: 'iterable'>
"""

from __future__ import annotations

import asyncio
import inspect
import math
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Iterable
from enum import StrEnum
from typing import Any, Callable, Sequence, TypeVar

from .errors import UnsupportedInputError
from .observability import get_logger
from .observer import Observable, unsubscribe
from .sequence import AsyncSequence, Selector, identity, resolve
from .sink import AsyncSink

T = TypeVar("T")

# Largest length an array-like may report (2**53 - 1)
MAX_SAFE_LENGTH = 9007199254740991

_log = get_logger("pullstream.sources")


class SourceKind(StrEnum):
    """Closed set of source shapes recognized at the boundary."""
    SEQUENCE = "sequence"
    TEXT = "text"
    ASYNC_ITERABLE = "async_iterable"
    ITERABLE = "iterable"
    DEFERRED = "deferred"
    OBSERVABLE = "observable"
    ARRAY_LIKE = "array_like"
    ASYNC_ITERATOR = "async_iterator"
    SCALAR = "scalar"


_TEXT_TYPES = (str, bytes, bytearray, memoryview)


def classify(source: object, *, text_as_item: bool = True) -> SourceKind:
    """Map a value to the SourceKind that decides its adapter.

    With text_as_item=False, str and bytes-like values are classified by
    their iterable shape instead of as TEXT.
    """
    if isinstance(source, AsyncSequence):
        return SourceKind.SEQUENCE
    if text_as_item and isinstance(source, _TEXT_TYPES):
        return SourceKind.TEXT
    if callable(getattr(source, "__aiter__", None)):
        return SourceKind.ASYNC_ITERABLE
    # asyncio.Future implements __iter__ for `yield from`; it is still a deferred value
    if isinstance(source, Iterable) and not inspect.isawaitable(source):
        return SourceKind.ITERABLE
    if inspect.isawaitable(source):
        return SourceKind.DEFERRED
    if callable(getattr(source, "subscribe", None)):
        return SourceKind.OBSERVABLE
    if hasattr(source, "__len__") and hasattr(source, "__getitem__"):
        return SourceKind.ARRAY_LIKE
    if callable(getattr(source, "__anext__", None)):
        return SourceKind.ASYNC_ITERATOR
    return SourceKind.SCALAR


def to_length(value: object) -> int:
    """Coerce a reported length into an int in [0, MAX_SAFE_LENGTH]."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return max(0, min(value, MAX_SAFE_LENGTH))
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or number <= 0:
        return 0
    if math.isinf(number):
        return MAX_SAFE_LENGTH
    return min(int(number), MAX_SAFE_LENGTH)


# ─────────────────────────────────────────────────────────────────────────────
# Adapters
# ─────────────────────────────────────────────────────────────────────────────


class OfSequence(AsyncSequence[T]):
    """Fixed, finite list of values yielded in order."""

    __slots__ = ("_values",)

    def __init__(self, values: Sequence[T]) -> None:
        self._values = tuple(values)

    async def __aiter__(self) -> AsyncIterator[T]:
        for value in self._values:
            yield value


class FromArrayLike(AsyncSequence[Any]):
    """Index-driven traversal of a sized, indexable object.

    The length is read once per iteration; elements are read live at each step.
    """

    __slots__ = ("_source", "_selector")

    def __init__(self, source: Any, selector: Selector = identity) -> None:
        self._source = source
        self._selector = selector

    async def __aiter__(self) -> AsyncIterator[Any]:
        # __len__ is called directly so out-of-range lengths get coerced instead of raising
        length = to_length(self._source.__len__())
        index = 0
        while index < length:
            yield await resolve(self._selector(self._source[index], index))
            index += 1


class FromIterable(AsyncSequence[Any]):
    """Traversal of a synchronous iterable. Awaitable items are awaited first."""

    __slots__ = ("_source", "_selector")

    def __init__(self, source: Iterable[Any], selector: Selector = identity) -> None:
        self._source = source
        self._selector = selector

    async def __aiter__(self) -> AsyncIterator[Any]:
        index = 0
        for item in self._source:
            if inspect.isawaitable(item):
                item = await item
            yield await resolve(self._selector(item, index))
            index += 1


class FromAsyncIterable(AsyncSequence[Any]):
    """Traversal of an async iterable."""

    __slots__ = ("_source", "_selector")

    def __init__(self, source: AsyncIterable[Any], selector: Selector = identity) -> None:
        self._source = source
        self._selector = selector

    async def __aiter__(self) -> AsyncIterator[Any]:
        index = 0
        iterator = aiter(self._source)
        try:
            async for item in iterator:
                yield await resolve(self._selector(item, index))
                index += 1
        finally:
            if (aclose := getattr(iterator, "aclose", None)) is not None:
                await aclose()


class FromAsyncIterator(FromAsyncIterable):
    """Traversal of a bare async iterator (``__anext__`` without ``__aiter__``)."""

    __slots__ = ()

    def __init__(self, source: Any, selector: Selector = identity) -> None:
        super().__init__(_IteratorView(source), selector)


class _IteratorView:
    __slots__ = ("_iterator",)

    def __init__(self, iterator: Any) -> None:
        self._iterator = iterator

    def __aiter__(self) -> Any:
        return self._iterator


class FromDeferred(AsyncSequence[Any]):
    """A single awaited value. A failed await propagates and yields nothing.

    A bare coroutine runs at most once: the first iteration schedules it as a
    task and every later iteration awaits that same task. A coroutine that is
    never iterated is never awaited.
    """

    __slots__ = ("_source", "_selector", "_task")

    def __init__(self, source: Awaitable[Any], selector: Selector = identity) -> None:
        self._source = source
        self._selector = selector
        self._task: asyncio.Future[Any] | None = None

    async def __aiter__(self) -> AsyncIterator[Any]:
        value = await self._awaitable()
        yield await resolve(self._selector(value, 0))

    def _awaitable(self) -> Awaitable[Any]:
        if not inspect.iscoroutine(self._source):
            return self._source
        if self._task is None:
            self._task = asyncio.ensure_future(self._source)
        return self._task


class FromObservable(AsyncSequence[Any]):
    """Pull view of a push source.

    Subscribes when iteration starts, buffers pushes in an AsyncSink and
    unsubscribes when the consumer stops or the source completes or fails.
    """

    __slots__ = ("_source", "_selector")

    def __init__(self, source: Observable, selector: Selector = identity) -> None:
        self._source = source
        self._selector = selector

    async def __aiter__(self) -> AsyncIterator[Any]:
        sink: AsyncSink[Any] = AsyncSink()
        subscription = self._source.subscribe(_SinkObserver(sink))
        _log.debug("observable subscribed", source=type(self._source).__name__)
        index = 0
        try:
            async for value in sink:
                yield await resolve(self._selector(value, index))
                index += 1
        finally:
            unsubscribe(subscription)
            _log.debug("observable unsubscribed", source=type(self._source).__name__, items=index)


class _SinkObserver:
    """Observer that forwards pushes into an AsyncSink (both naming conventions)."""

    __slots__ = ("_sink",)

    def __init__(self, sink: AsyncSink[Any]) -> None:
        self._sink = sink

    def next(self, value: Any) -> None:
        self._sink.write(value)

    def error(self, error: BaseException) -> None:
        self._sink.error(error)

    def complete(self) -> None:
        self._sink.end()

    on_next = next
    on_error = error
    on_completed = complete


# ─────────────────────────────────────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────────────────────────────────────


_ADAPTERS: dict[SourceKind, Callable[[Any, Selector], AsyncSequence[Any]]] = {
    SourceKind.ASYNC_ITERABLE: FromAsyncIterable,
    SourceKind.ITERABLE: FromIterable,
    SourceKind.DEFERRED: FromDeferred,
    SourceKind.OBSERVABLE: FromObservable,
    SourceKind.ARRAY_LIKE: FromArrayLike,
    SourceKind.ASYNC_ITERATOR: FromAsyncIterator,
}

# Kinds the lenient normalizer adapts; everything else becomes a single item
_NORMALIZED_KINDS = frozenset({
    SourceKind.ASYNC_ITERABLE,
    SourceKind.ITERABLE,
    SourceKind.DEFERRED,
    SourceKind.OBSERVABLE,
    SourceKind.ARRAY_LIKE,
})


def normalize(source: object) -> AsyncSequence[Any]:
    """Lenient normalization used by AsyncSequence.wrap() and pipe()."""
    kind = classify(source)
    if kind is SourceKind.SEQUENCE:
        return source  # type: ignore[return-value]
    if kind in _NORMALIZED_KINDS:
        return _ADAPTERS[kind](source, identity)
    return OfSequence((source,))


def adapt(source: object, selector: Selector = identity) -> AsyncSequence[Any]:
    """Strict adaptation used by AsyncSequence.from_source()."""
    kind = classify(source, text_as_item=False)
    if kind is SourceKind.SEQUENCE:
        kind = SourceKind.ASYNC_ITERABLE
    if (factory := _ADAPTERS.get(kind)) is None:
        raise UnsupportedInputError.for_value(source)
    return factory(source, selector)
