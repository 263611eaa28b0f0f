"""Prepend a shared prefix to every group of a frayed iterator."""

from typing import Any, Iterable, Iterator, Optional

from .base import EXHAUSTED, Frayed

_MISSING = object()


class Prefix(Frayed):
    """
    Frayed iterator yielding `prefix + group` for every group of `postfixes`.

    The prefix is re-iterated for each group, so it should be a sequence or
    another re-iterable; a one-shot iterator is snapshotted into a tuple.
    By default an empty postfix yields nothing at all; with
    `prefix_empty=True` it yields a single group holding just the prefix.
    """

    def __init__(self, prefix: Iterable[Any], postfixes: Iterable[Any], *, prefix_empty: bool = False):
        if iter(prefix) is prefix:
            prefix = tuple(prefix)
        self.prefix = prefix
        self._iter = iter(postfixes)
        self._peeked = _MISSING
        self._consume: Optional[Iterator[Any]] = None
        if self._peek() is not EXHAUSTED:
            self._consume = iter(self.prefix)
        self.prefix_empty(prefix_empty)

    def prefix_empty(self, enable: bool = True) -> "Prefix":
        """Emit the prefix before the first group even if the postfix is empty"""
        if self._consume is None and enable:
            self._consume = iter(self.prefix)
        return self

    with_prefix_empty = prefix_empty

    def _pull(self):
        try:
            return next(self._iter)
        except StopIteration:
            return EXHAUSTED

    def _peek(self):
        if self._peeked is _MISSING:
            self._peeked = self._pull()
        return self._peeked

    def _next_postfix(self):
        if self._peeked is not _MISSING:
            elt, self._peeked = self._peeked, _MISSING
            return elt
        return self._pull()

    def _step(self):
        elt = self._next_postfix()
        if elt is EXHAUSTED:
            # re-arm only if another group follows this terminator
            if self._peek() is not EXHAUSTED:
                self._consume = iter(self.prefix)
            else:
                self._consume = None
            raise StopIteration
        return elt

    def __next__(self):
        if self._consume is not None:
            elt = next(self._consume, _MISSING)
            if elt is not _MISSING:
                return elt
            self._consume = None
        return self._step()
