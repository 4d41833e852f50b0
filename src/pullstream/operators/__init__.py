"""Operators for AsyncSequence.pipe().

Each factory returns a function from sequence to sequence:

    >>> from pullstream.operators import select, take, where
    >>> seq.pipe(where(lambda x, i: x % 2), select(lambda x, i: x * 10), take(3))
"""

from .select import Predicate, SelectSequence, WhereSequence, select, where
from .take import TakeSequence, take
from .tap import TapSequence, tap

__all__ = [
    "tap",
    "TapSequence",
    "select",
    "SelectSequence",
    "where",
    "WhereSequence",
    "Predicate",
    "take",
    "TakeSequence",
]
