"""Tests for the byte-stream reader adapter and reader release.

Validates:
- Default reads yield chunks verbatim
- BYOB fill cycles: full buffers, end mid-fill, zero-size requests, storage changes
- Fallback to default reads when no BYOB reader is available
- Exactly-once release on exhaustion, failure and early close
- Suppressed cancel and unlock failures
- Release of iterators dropped without aclose()
"""

from __future__ import annotations

import asyncio
import gc
import itertools
from collections.abc import Iterable
from typing import Any

import pytest

from pullstream import (
    AsyncSequence,
    InvalidReadRequestError,
    ReaderLease,
    ReadMode,
    ReadResult,
    from_readable_stream,
)
from pullstream.operators import take
from pullstream.streams import ByobReadLoop, ReadableByteStreamSequence, ReaderState


# ─────────────────────────────────────────────────────────────────────────────
# Test Fixtures: Fake stream and reader
# ─────────────────────────────────────────────────────────────────────────────


class FakeStream:
    """Readable byte stream double that records every reader interaction.

    Args:
        chunks: Bytes produced by successive reads (may be infinite)
        byob: Whether get_reader(mode="byob") succeeds
        transfer: Move the buffer to fresh storage on reads into a whole buffer
        read_error / cancel_error / release_error: Raised by the matching reader call
        unlock_on_cancel: Cancelling the reader also unlocks the stream
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        byob: bool = True,
        transfer: bool = False,
        read_error: BaseException | None = None,
        cancel_error: BaseException | None = None,
        release_error: BaseException | None = None,
        unlock_on_cancel: bool = False,
    ) -> None:
        self.chunks = iter(chunks)
        self.pending = b""
        self.byob = byob
        self.transfer = transfer
        self.read_error = read_error
        self.cancel_error = cancel_error
        self.release_error = release_error
        self.unlock_on_cancel = unlock_on_cancel
        self.locked = False
        self.modes: list[str | None] = []
        self.reads = 0
        self.cancels: list[BaseException | None] = []
        self.releases = 0
        self.transferred: list[bytearray] = []

    def get_reader(self, mode: str | None = None) -> FakeReader:
        if mode == "byob" and not self.byob:
            raise TypeError("byob readers are not supported")
        self.modes.append(mode)
        self.locked = True
        return FakeReader(self)

    def next_chunk(self) -> bytes | None:
        if self.pending:
            chunk, self.pending = self.pending, b""
            return chunk
        return next(self.chunks, None)


class FakeReader:
    def __init__(self, stream: FakeStream) -> None:
        self.stream = stream
        self.closed: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    async def read(self, view: memoryview | None = None) -> ReadResult[Any]:
        stream = self.stream
        stream.reads += 1
        await asyncio.sleep(0)
        if stream.read_error is not None:
            raise stream.read_error
        chunk = stream.next_chunk()
        if chunk is None:
            return ReadResult(True, None if view is None else view[:0])
        if view is None:
            return ReadResult(False, chunk)
        count = min(len(chunk), view.nbytes)
        stream.pending = chunk[count:]
        if stream.transfer and len(view.obj) == view.nbytes:
            storage = bytearray(view.obj)
            stream.transferred.append(storage)
            view = memoryview(storage)
        view[:count] = chunk[:count]
        return ReadResult(False, view[:count])

    async def cancel(self, reason: BaseException | None = None) -> None:
        self.stream.cancels.append(reason)
        if self.stream.unlock_on_cancel:
            self.stream.locked = False
        if self.stream.cancel_error is not None:
            raise self.stream.cancel_error

    def release_lock(self) -> None:
        if self.stream.release_error is not None:
            raise self.stream.release_error
        self.stream.locked = False
        self.stream.releases += 1
        if not self.closed.done():
            self.closed.set_exception(TypeError("reader released"))


class UnreadableLockStream(FakeStream):
    """Stream whose lock state cannot be read."""

    @property
    def locked(self) -> bool:
        raise RuntimeError("lock state unavailable")

    @locked.setter
    def locked(self, value: bool) -> None:
        pass


def forever(chunk: bytes) -> Iterable[bytes]:
    return itertools.repeat(chunk)


async def settle_dropped() -> None:
    """Collect dropped iterators and let their scheduled releases run."""
    gc.collect()
    for _ in range(5):
        await asyncio.sleep(0)


# ─────────────────────────────────────────────────────────────────────────────
# Default mode
# ─────────────────────────────────────────────────────────────────────────────


class TestDefaultMode:

    @pytest.mark.asyncio
    async def test_chunks_verbatim(self) -> None:
        stream = FakeStream([b"ab", b"cde"])
        assert await from_readable_stream(stream).to_list() == [b"ab", b"cde"]
        assert stream.modes == [None]

    @pytest.mark.asyncio
    async def test_exhaustion_releases_once(self) -> None:
        stream = FakeStream([b"x"])
        iterator = aiter(from_readable_stream(stream))
        assert await anext(iterator) == b"x"
        with pytest.raises(StopAsyncIteration):
            await anext(iterator)
        assert not stream.locked
        assert stream.cancels == [None]
        assert stream.releases == 1

        await iterator.aclose()
        with pytest.raises(StopAsyncIteration):
            await anext(iterator)
        assert stream.cancels == [None]
        assert stream.releases == 1
        assert stream.reads == 2

    @pytest.mark.asyncio
    async def test_wrap_accepts_stream_sequence(self) -> None:
        stream = FakeStream([b"1", b"2"])
        result = await AsyncSequence.wrap(from_readable_stream(stream)).to_list()
        assert result == [b"1", b"2"]
        assert not stream.locked

    def test_unknown_mode(self) -> None:
        with pytest.raises(ValueError, match="Unknown read mode"):
            from_readable_stream(FakeStream([]), mode="turbo")


# ─────────────────────────────────────────────────────────────────────────────
# BYOB mode
# ─────────────────────────────────────────────────────────────────────────────


class TestByobMode:

    @pytest.mark.asyncio
    async def test_small_reads_fill_one_region(self) -> None:
        stream = FakeStream(forever(b"abc"))
        async with aiter(from_readable_stream(stream, mode="byob")) as iterator:
            region = await iterator.asend(10)
            assert bytes(region) == b"abcabcabca"
            assert stream.reads == 4
            assert iterator.mode is ReadMode.BYOB
            assert not iterator.fell_back
        assert not stream.locked
        assert stream.cancels == [None]

    @pytest.mark.asyncio
    async def test_end_mid_fill_yields_partial_then_done(self) -> None:
        stream = FakeStream([b"abcd"])
        iterator = aiter(from_readable_stream(stream, mode="byob"))
        region = await iterator.asend(10)
        assert bytes(region) == b"abcd"
        assert len(region) == 4
        with pytest.raises(StopAsyncIteration):
            await iterator.asend(10)
        assert stream.reads == 2
        assert not stream.locked

    @pytest.mark.asyncio
    async def test_end_without_data_is_done(self) -> None:
        stream = FakeStream([])
        iterator = aiter(from_readable_stream(stream, mode="byob"))
        with pytest.raises(StopAsyncIteration):
            await iterator.asend(8)
        assert stream.reads == 1
        assert stream.releases == 1

    @pytest.mark.asyncio
    async def test_zero_size_request_is_empty_not_done(self) -> None:
        stream = FakeStream([b"xyz"])
        async with aiter(from_readable_stream(stream, mode="byob")) as iterator:
            empty = await iterator.asend(0)
            assert len(empty) == 0
            assert stream.reads == 0
            assert bytes(await iterator.asend(3)) == b"xyz"

    @pytest.mark.asyncio
    async def test_caller_buffer_is_filled_in_place(self) -> None:
        stream = FakeStream(forever(b"ab"))
        buffer = bytearray(5)
        async with aiter(from_readable_stream(stream, mode="byob")) as iterator:
            region = await iterator.asend(buffer)
        assert region.obj is buffer
        assert bytes(buffer) == b"ababa"

    @pytest.mark.asyncio
    async def test_plain_pull_uses_read_size(self) -> None:
        stream = FakeStream(forever(b"0123456789"))
        async with aiter(ReadableByteStreamSequence(stream, read_size=4)) as iterator:
            assert bytes(await anext(iterator)) == b"0123"
            assert bytes(await anext(iterator)) == b"4567"

    @pytest.mark.asyncio
    async def test_storage_change_is_tracked(self) -> None:
        stream = FakeStream(forever(b"abc"), transfer=True)
        async with aiter(from_readable_stream(stream, mode="byob")) as iterator:
            region = await iterator.asend(7)
        assert bytes(region) == b"abcabca"
        assert len(stream.transferred) == 1
        assert region.obj is stream.transferred[0]

    @pytest.mark.parametrize("request_", ["nope", True, -1, b"read-only", 1.5])
    @pytest.mark.asyncio
    async def test_invalid_request(self, request_: Any) -> None:
        stream = FakeStream(forever(b"abc"))
        iterator = aiter(from_readable_stream(stream, mode="byob"))
        with pytest.raises(InvalidReadRequestError) as info:
            await iterator.asend(request_)
        assert isinstance(info.value, TypeError)
        assert stream.reads == 0
        assert not stream.locked
        assert stream.cancels == [info.value]
        with pytest.raises(StopAsyncIteration):
            await iterator.asend(3)

    @pytest.mark.asyncio
    async def test_loop_states(self) -> None:
        stream = FakeStream([b"ab"])
        loop = ByobReadLoop(stream.get_reader(mode="byob"), read_size=4)
        assert loop.state is ReaderState.UNINITIALIZED
        assert bytes(await loop.step(4)) == b"ab"
        assert loop.state is ReaderState.ACTIVE
        with pytest.raises(StopAsyncIteration):
            await loop.step(4)
        assert loop.state is ReaderState.DONE


# ─────────────────────────────────────────────────────────────────────────────
# Fallback
# ─────────────────────────────────────────────────────────────────────────────


class TestFallback:

    @pytest.mark.asyncio
    async def test_falls_back_to_default_reader(self) -> None:
        stream = FakeStream([b"ab", b"c"], byob=False)
        iterator = aiter(from_readable_stream(stream, mode="byob"))
        assert iterator.fell_back
        assert iterator.mode is ReadMode.DEFAULT
        assert await anext(iterator) == b"ab"
        # requests are ignored for the rest of the iteration
        assert await iterator.asend(1) == b"c"
        with pytest.raises(StopAsyncIteration):
            await anext(iterator)
        assert stream.modes == [None]
        assert not stream.locked


# ─────────────────────────────────────────────────────────────────────────────
# Release
# ─────────────────────────────────────────────────────────────────────────────


class TestRelease:

    @pytest.mark.asyncio
    async def test_read_failure_cancels_with_reason(self) -> None:
        failure = OSError("connection reset")
        stream = FakeStream([b"a"], read_error=failure)
        iterator = aiter(from_readable_stream(stream))
        with pytest.raises(OSError, match="connection reset"):
            await anext(iterator)
        assert stream.cancels == [failure]
        assert not stream.locked
        with pytest.raises(StopAsyncIteration):
            await anext(iterator)

    @pytest.mark.asyncio
    async def test_early_close(self) -> None:
        stream = FakeStream(forever(b"a"))
        iterator = aiter(from_readable_stream(stream))
        await anext(iterator)
        await iterator.aclose()
        await iterator.aclose()
        assert stream.cancels == [None]
        assert stream.releases == 1
        assert iterator.finished

    @pytest.mark.asyncio
    async def test_break_inside_async_with(self) -> None:
        stream = FakeStream(forever(b"a"))
        async with aiter(from_readable_stream(stream)) as iterator:
            async for _ in iterator:
                break
        assert not stream.locked

    @pytest.mark.asyncio
    async def test_take_releases_stream(self) -> None:
        stream = FakeStream(forever(b"chunk"))
        assert await from_readable_stream(stream).pipe(take(2)).to_list() == [b"chunk", b"chunk"]
        assert not stream.locked
        assert stream.cancels == [None]

    @pytest.mark.asyncio
    async def test_cancel_failure_suppressed(self) -> None:
        stream = FakeStream(forever(b"a"), cancel_error=RuntimeError("cancel failed"))
        iterator = aiter(from_readable_stream(stream))
        await anext(iterator)
        await iterator.aclose()
        assert not stream.locked
        assert stream.releases == 1

    @pytest.mark.asyncio
    async def test_cancel_failure_does_not_mask_read_failure(self) -> None:
        stream = FakeStream([], read_error=ValueError("primary"), cancel_error=RuntimeError("secondary"))
        with pytest.raises(ValueError, match="primary"):
            await from_readable_stream(stream).to_list()

    @pytest.mark.asyncio
    async def test_unlock_failure_suppressed(self) -> None:
        stream = FakeStream(forever(b"a"), release_error=RuntimeError("unlock failed"))
        iterator = aiter(from_readable_stream(stream))
        await anext(iterator)
        await iterator.aclose()
        assert stream.releases == 0
        assert iterator.finished

    @pytest.mark.asyncio
    async def test_no_unlock_when_cancel_unlocked(self) -> None:
        stream = FakeStream(forever(b"a"), unlock_on_cancel=True)
        iterator = aiter(from_readable_stream(stream))
        await anext(iterator)
        await iterator.aclose()
        assert stream.releases == 0
        assert not stream.locked

    @pytest.mark.asyncio
    async def test_closed_rejection_is_retrieved(self) -> None:
        stream = FakeStream(forever(b"a"))
        reader = stream.get_reader()
        lease = ReaderLease(stream, reader)
        assert await lease.release() is True
        assert await lease.release() is False
        await asyncio.sleep(0)
        assert isinstance(reader.closed.exception(), TypeError)
        assert lease.released

    @pytest.mark.asyncio
    async def test_break_without_aclose_releases(self) -> None:
        stream = FakeStream(forever(b"a"))
        async for _ in from_readable_stream(stream):
            break
        await settle_dropped()
        assert stream.cancels == [None]
        assert stream.releases == 1
        assert not stream.locked

    @pytest.mark.asyncio
    async def test_dropped_before_first_pull_releases(self) -> None:
        stream = FakeStream(forever(b"a"), byob=False)
        iterator = aiter(from_readable_stream(stream, mode="byob"))
        assert stream.locked
        del iterator
        await settle_dropped()
        assert stream.releases == 1
        assert not stream.locked

    @pytest.mark.asyncio
    async def test_finished_iterator_released_once(self) -> None:
        stream = FakeStream([b"a"])
        iterator = aiter(from_readable_stream(stream))
        assert [chunk async for chunk in iterator] == [b"a"]
        del iterator
        await settle_dropped()
        assert stream.releases == 1
        assert stream.cancels == [None]

    @pytest.mark.asyncio
    async def test_lock_state_failure_suppressed(self) -> None:
        stream = UnreadableLockStream(forever(b"a"))
        iterator = aiter(from_readable_stream(stream))
        await anext(iterator)
        await iterator.aclose()
        assert iterator.finished
        assert stream.cancels == [None]
        assert stream.releases == 0
