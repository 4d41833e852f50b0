"""Byte-oriented readable streams as pull sequences.

Readers are acquired per iteration and released exactly once through a
ReaderLease, whether iteration ends by exhaustion, failure or aclose().

Example:
    >>> from pullstream.streams import ReadableStream, from_readable_stream
    >>> stream = ReadableStream([b"abc", b"def"])
    >>> async with aiter(from_readable_stream(stream, mode="byob")) as it:
    ...     first = await it.asend(4)   # b"abcd"
"""

from .lease import LeasedIterator, ReaderLease, ReadLoop
from .protocols import (
    BaseReader,
    ByobReader,
    DefaultReader,
    ReadableByteStream,
    ReadMode,
    ReadResult,
)
from .readable import ByobStreamReader, DefaultStreamReader, ReadableStream
from .reader import (
    ByobReadLoop,
    DefaultReadLoop,
    ReadableByteStreamSequence,
    ReadableStreamSequence,
    ReaderState,
    from_readable_stream,
)

__all__ = [
    # Protocols
    "BaseReader",
    "ByobReader",
    "DefaultReader",
    "ReadableByteStream",
    "ReadMode",
    "ReadResult",
    # Lease
    "LeasedIterator",
    "ReaderLease",
    "ReadLoop",
    # Sequences
    "ReaderState",
    "DefaultReadLoop",
    "ByobReadLoop",
    "ReadableStreamSequence",
    "ReadableByteStreamSequence",
    "from_readable_stream",
    # Concrete stream
    "ReadableStream",
    "DefaultStreamReader",
    "ByobStreamReader",
]
