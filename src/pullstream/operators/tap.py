"""Side-effect operator: observe items without changing them."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Callable, TypeVar

from pullstream.observer import CompleteHandler, ErrorHandler, NextHandler, PartialObserver, to_observer
from pullstream.sequence import AsyncSequence, closing_iterator, resolve

T = TypeVar("T")


class TapSequence(AsyncSequence[T]):
    """Calls observer.next before each item is yielded, error on failure and complete at the end.

    Callbacks may be async and are awaited before the sequence continues. A
    failure is re-raised after error() has run.
    """

    __slots__ = ("_source", "_observer")

    def __init__(self, source: AsyncSequence[T], observer: PartialObserver) -> None:
        self._source = source
        self._observer = observer

    async def __aiter__(self) -> AsyncIterator[T]:
        observer = self._observer
        async with closing_iterator(self._source) as iterator:
            try:
                async for item in iterator:
                    if observer.next is not None:
                        await resolve(observer.next(item))
                    yield item
            except Exception as exc:
                if observer.error is not None:
                    await resolve(observer.error(exc))
                raise
        if observer.complete is not None:
            await resolve(observer.complete())


def tap(
    observer_or_next: object | NextHandler | None = None,
    error: ErrorHandler | None = None,
    complete: CompleteHandler | None = None,
) -> Callable[[AsyncSequence[T]], TapSequence[T]]:
    """Curried tap for pipe().

    Example:
        >>> seen = []
        >>> await AsyncSequence.of(1, 2).pipe(tap(seen.append)).to_list()
        [1, 2]
        >>> seen
        [1, 2]
    """
    observer = to_observer(observer_or_next, error, complete)

    def operator(source: AsyncSequence[T]) -> TapSequence[T]:
        return TapSequence(source, observer)

    return operator
