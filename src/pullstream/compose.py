"""Operator composition and sink export.

pipe() applies operators left to right. A sink as the last step switches
from composition to consumption: everything before it is drained into the
sink, and the sink itself is the result. A sink anywhere else is a TypeError.

Sink contract:
    write(chunk)          required; may return an awaitable
    drain()               optional async flow control (asyncio.StreamWriter)
    aclose() / close()    end signal, sent after exhaustion unless end=False
    wait_closed()         optional, awaited after close()
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from .observability import get_logger
from .sequence import closing_iterator, resolve

if TYPE_CHECKING:
    from .sequence import AsyncSequence

S = TypeVar("S")

_log = get_logger("pullstream.compose")


@runtime_checkable
class Sink(Protocol):
    """Destination accepting written chunks."""

    def write(self, chunk: Any) -> Awaitable[object] | object: ...


def is_sink(obj: object) -> bool:
    """Whether obj can be used as a pipe destination."""
    return not callable(obj) and callable(getattr(obj, "write", None))


def pipe(source: AsyncSequence[Any], steps: Sequence[Any], *, end: bool = True) -> Any:
    """Apply steps to source. Returns a sequence, or an awaitable resolving to a sink."""
    from .sources import normalize

    acc: AsyncSequence[Any] = source
    for position, step in enumerate(steps):
        if callable(step):
            acc = normalize(step(acc))
        elif is_sink(step):
            if position < len(steps) - 1:
                raise TypeError(f"pipe step {position + 1} follows the sink at step {position}; a sink must be last")
            return drain(acc, step, end=end)
        else:
            raise TypeError(
                f"pipe step {position} must be callable or a sink with write(), got {type(step).__name__}"
            )
    return acc


async def drain(source: AsyncSequence[Any], sink: S, *, end: bool = True) -> S:
    """Write every item of source into sink, then close it unless end=False.

    A failure leaves the sink open and propagates; the source iterator is
    closed on every path.
    """
    write = sink.write  # type: ignore[attr-defined]
    flush = getattr(sink, "drain", None)
    count = 0
    async with closing_iterator(source) as iterator:
        async for chunk in iterator:
            await resolve(write(chunk))
            if callable(flush):
                await resolve(flush())
            count += 1
    if end:
        await _close(sink)
    _log.debug("sink drained", sink=type(sink).__name__, items=count, closed=end)
    return sink


async def _close(sink: object) -> None:
    if callable(aclose := getattr(sink, "aclose", None)):
        await aclose()
        return
    if callable(close := getattr(sink, "close", None)):
        await resolve(close())
        if callable(wait_closed := getattr(sink, "wait_closed", None)):
            await wait_closed()
