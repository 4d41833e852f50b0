"""pullstream - one pull-based sequence type for every async producer.

Collections, awaitables, observables and byte streams are normalized into
AsyncSequence, composed with pipe(), and drained into byte sinks.

Quick Start:
    >>> from pullstream import AsyncSequence
    >>> from pullstream.operators import select, where
    >>>
    >>> seq = AsyncSequence.wrap([1, 2, 3, 4])
    >>> await seq.pipe(where(lambda x, i: x % 2 == 0), select(lambda x, i: x * 10)).to_list()
    [20, 40]

Strict adaptation with a selector:
    >>> await AsyncSequence.from_source("ab", lambda ch, i: f"{i}:{ch}").to_list()
    ['0:a', '1:b']
    >>> AsyncSequence.from_source(42)
    Traceback (most recent call last):
    UnsupportedInputError: Input type not supported

Byte streams (buffer reuse):
    >>> from pullstream.streams import ReadableStream, from_readable_stream
    >>> chunks = from_readable_stream(ReadableStream.from_reader(reader), mode="byob")
    >>> async with aiter(chunks) as it:
    ...     header = await it.asend(16)

Draining into a sink:
    >>> writer = await seq.pipe(select(encode), stream_writer)  # closed afterwards
    >>> await seq.pipe_to(stream_writer, end=False)            # left open
"""

from .compose import Sink, drain, is_sink
from .config import PullstreamSettings, clear_settings_cache, get_settings
from .errors import (
    ErrorCode,
    InvalidReadRequestError,
    SequenceError,
    SequenceException,
    StreamLockedError,
    UnsupportedInputError,
)
from .observability import configure_logging, get_logger
from .observer import Observable, PartialObserver, to_observer
from .sequence import AsyncSequence, Operator, Selector, identity
from .sink import AsyncSink
from .sources import MAX_SAFE_LENGTH, SourceKind, classify, to_length
from .streams import (
    LeasedIterator,
    ReadableByteStreamSequence,
    ReadableStream,
    ReadableStreamSequence,
    ReaderLease,
    ReadMode,
    ReadResult,
    from_readable_stream,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "AsyncSequence",
    "Selector",
    "Operator",
    "identity",
    # Sources
    "SourceKind",
    "classify",
    "to_length",
    "MAX_SAFE_LENGTH",
    "AsyncSink",
    "Observable",
    "PartialObserver",
    "to_observer",
    # Composition
    "Sink",
    "drain",
    "is_sink",
    # Streams
    "ReadableStream",
    "ReadableStreamSequence",
    "ReadableByteStreamSequence",
    "from_readable_stream",
    "LeasedIterator",
    "ReaderLease",
    "ReadMode",
    "ReadResult",
    # Errors
    "ErrorCode",
    "SequenceError",
    "SequenceException",
    "UnsupportedInputError",
    "InvalidReadRequestError",
    "StreamLockedError",
    # Config & logging
    "PullstreamSettings",
    "get_settings",
    "clear_settings_cache",
    "configure_logging",
    "get_logger",
]
