"""
The frayed producer contract.

A frayed iterator raises StopIteration to end the current group and may then
carry on producing the next group. Two StopIterations in a row mean the
producer is exhausted. Ordinary iterators stay exhausted once finished, so
they are frayed iterators holding a single group.
"""

from collections.abc import Iterator
from typing import Any, Iterable

from .utils import ContractViolationError


class _Exhausted:
    """Sentinel for "nothing more here", so None stays a legal element."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "EXHAUSTED"

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_Exhausted, ())


EXHAUSTED = _Exhausted()


class Frayed(Iterator):
    """Marker base class for iterators that follow the frayed contract"""
    pass


class FrayedIter(Frayed):
    """Tags an ordinary iterator as frayed without changing what it yields"""

    def __init__(self, iterable: Iterable[Any]):
        self.unfused = iter(iterable)

    def __next__(self):
        return next(self.unfused)


def frayed(iterable: Iterable[Any]) -> FrayedIter:
    """Mark an iterator as frayed"""
    return FrayedIter(iterable)


_BOUNDARY = object()


class FromGroups(Frayed):
    """
    Frayed producer emitting each inner iterable as one group.

    Only the first group may be empty: an empty group anywhere else would
    put two terminators back to back, which reads as exhaustion.
    """

    def __init__(self, groups: Iterable[Iterable[Any]]):
        self._tokens = self._emit(groups)

    @staticmethod
    def _emit(groups):
        for position, group in enumerate(groups):
            if position:
                yield _BOUNDARY
            count = 0
            for item in group:
                count += 1
                yield item
            if position and not count:
                raise ContractViolationError(
                    f"Group {position} is empty; only the first group of a frayed sequence may be empty"
                )
        yield _BOUNDARY

    def __next__(self):
        token = next(self._tokens)
        if token is _BOUNDARY:
            raise StopIteration
        return token


def from_groups(groups: Iterable[Iterable[Any]]) -> FromGroups:
    """Build a frayed producer from an iterable of groups"""
    return FromGroups(groups)
