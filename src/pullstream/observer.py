"""Observer and subscription shapes for push-based sources.

Two naming conventions are accepted: next/error/complete and the RxPY
on_next/on_error/on_completed. Subscriptions are torn down with
unsubscribe(), dispose(), or by calling them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

NextHandler = Callable[[Any], "Awaitable[object] | object"]
ErrorHandler = Callable[[BaseException], "Awaitable[object] | object"]
CompleteHandler = Callable[[], "Awaitable[object] | object"]


@runtime_checkable
class Observable(Protocol):
    """Anything that exposes a callable subscribe(observer)."""

    def subscribe(self, observer: Any) -> object: ...


@dataclass(frozen=True, slots=True)
class PartialObserver:
    """Observer whose callbacks are all optional and may be async."""

    next: NextHandler | None = None
    error: ErrorHandler | None = None
    complete: CompleteHandler | None = None


def to_observer(
    observer_or_next: object | NextHandler | None = None,
    error: ErrorHandler | None = None,
    complete: CompleteHandler | None = None,
) -> PartialObserver:
    """Build a PartialObserver from an observer-like object or plain callables.

    Example:
        >>> to_observer(print).next is print
        True
        >>> to_observer(None, complete=lambda: None).next is None
        True
    """
    if observer_or_next is None or callable(observer_or_next):
        return PartialObserver(next=observer_or_next, error=error, complete=complete)  # type: ignore[arg-type]
    return PartialObserver(
        next=_pick(observer_or_next, "next", "on_next"),
        error=_pick(observer_or_next, "error", "on_error"),
        complete=_pick(observer_or_next, "complete", "on_completed"),
    )


def unsubscribe(subscription: object) -> None:
    """Tear down a subscription returned by Observable.subscribe()."""
    if subscription is None:
        return
    for name in ("unsubscribe", "dispose"):
        if callable(teardown := getattr(subscription, name, None)):
            teardown()
            return
    if callable(subscription):
        subscription()


def _pick(obj: object, *names: str) -> Callable[..., object] | None:
    for name in names:
        if callable(fn := getattr(obj, name, None)):
            return fn
    return None
