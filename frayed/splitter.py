"""
Lazy splitting of a frayed iterator into one iterator per group.

If the groups are consumed in their original order, or if each group is
closed without keeping it around, the engine buffers nothing. Buffering is
only needed while several group iterators are alive at the same time and an
earlier one still has unread elements.
"""

import logging
from collections import deque
from typing import Any, Callable, Iterable, Iterator, List, Optional

from .base import EXHAUSTED
from .models import DefrayStats, get_settings
from .utils import ContractViolationError, ExclusiveCell, InvariantError, describe_index

logger = logging.getLogger(__name__)

_MISSING = object()


class _DefrayState:
    """Mutable bookkeeping shared by every cursor of one Defray."""

    def __init__(self, iterable: Iterable[Any], check: bool = False):
        self.iter = iter(iterable)
        self.check = check
        # terminators read from the producer so far
        self.current_index = 0
        # single-slot lookahead, always an element of top_group
        self.current_elt = _MISSING
        self.done = False
        self.last_was_none = False
        # group currently drawn straight from the producer
        self.top_group = 0
        # least group that may still have buffered elements
        self.oldest_buffered_group = 0
        # group index of buffer[0]; slots below oldest_buffered_group are spent
        self.bottom_group = 0
        self.buffer: List[deque] = []
        # highest group whose cursor was closed, None until one is
        self.dropped_group: Optional[int] = None
        self.buffer_allocations = 0
        # elements of top_group drained so far by an interrupted step_buffering
        self.draining: Optional[deque] = None
        # top_group fully drained, first element of the next group not yet read
        self.tail_drained = False

    def step(self, client: int):
        if client < self.oldest_buffered_group:
            return EXHAUSTED
        if client == self.top_group and self.draining:
            return self.draining.popleft()
        if client < self.top_group or (
            client == self.top_group and len(self.buffer) > self.top_group - self.bottom_group
        ):
            return self.lookup_buffer(client)
        if self.done:
            return EXHAUSTED
        if client == self.top_group:
            return self.step_current()
        if client == self.top_group + 1:
            return self.step_buffering()

        message = f"Group {client} requested before group {self.top_group + 1} was discovered"
        logger.error(message)
        raise ContractViolationError(
            f"{message}; groups must be discovered one at a time in increasing order"
        )

    def lookup_buffer(self, client: int):
        bufidx = client - self.bottom_group
        elt = EXHAUSTED
        if bufidx < len(self.buffer) and self.buffer[bufidx]:
            elt = self.buffer[bufidx].popleft()

        if elt is EXHAUSTED and client == self.oldest_buffered_group:
            self.oldest_buffered_group += 1
            # skip forward over further drained queues
            while (
                self.oldest_buffered_group - self.bottom_group < len(self.buffer)
                and not self.buffer[self.oldest_buffered_group - self.bottom_group]
            ):
                self.oldest_buffered_group += 1

            nclear = self.oldest_buffered_group - self.bottom_group
            if nclear > 0 and nclear >= len(self.buffer) // 2:
                if self.buffer:
                    logger.debug(
                        f"Compacting buffer: releasing {min(nclear, len(self.buffer))} of "
                        f"{len(self.buffer)} slots, bottom group {self.bottom_group} -> "
                        f"{self.oldest_buffered_group}"
                    )
                del self.buffer[:nclear]
                self.bottom_group = self.oldest_buffered_group
        return elt

    def next_element(self):
        """Pull from the producer, latching exhaustion on a second terminator."""
        try:
            elt = next(self.iter)
        except StopIteration:
            self.current_index += 1
            if self.last_was_none:
                self.done = True
                logger.debug(f"Producer exhausted after {self.current_index} terminators")
            self.last_was_none = True
            return EXHAUSTED
        self.last_was_none = False
        return elt

    def step_buffering(self):
        # The Groups cursor is always first to request a new index, so the
        # caller is exactly one past the active group.
        keep = not self.is_dropped(self.top_group)

        if not self.tail_drained:
            # partial drains survive a producer exception and resume here
            if not keep:
                self.draining = None
            elif self.draining is None:
                self.draining = deque()
            group = self.draining

            if self.current_elt is not _MISSING:
                elt, self.current_elt = self.current_elt, _MISSING
                if keep:
                    group.append(elt)

            while not self.done:
                elt = self.next_element()
                if elt is EXHAUSTED:
                    break
                if keep:
                    group.append(elt)

            self.draining = None
            self.tail_drained = True
            if keep:
                logger.debug(f"Buffering {len(group)} elements of group {self.top_group}")
                self.push_next_group(group)
            else:
                logger.debug(f"Discarding the tail of dropped group {self.top_group}")

        first = EXHAUSTED if self.done else self.next_element()
        self.tail_drained = False

        if first is not EXHAUSTED:
            self.top_group += 1
        return first

    def push_next_group(self, group: deque):
        # fill the slots between the last buffered group and top_group
        while self.top_group - self.bottom_group > len(self.buffer):
            if not self.buffer:
                self.bottom_group += 1
                self.oldest_buffered_group += 1
            else:
                self.buffer.append(deque())
        self.buffer.append(group)
        self.buffer_allocations += 1

        if self.check and self.top_group + 1 - self.bottom_group != len(self.buffer):
            raise InvariantError(
                f"Buffer holds {len(self.buffer)} slots for groups "
                f"{self.bottom_group}..{self.top_group}"
            )

    def step_current(self):
        """The in-order case; touches no buffer."""
        if self.current_elt is not _MISSING:
            elt, self.current_elt = self.current_elt, _MISSING
            return elt
        elt = self.next_element()
        if elt is EXHAUSTED:
            self.draining = None
            self.top_group += 1
        return elt

    def lookahead(self):
        """
        Pull one element past a terminator that just ended a group.

        A second terminator latches exhaustion; anything else is kept as
        the first element of the new top group.
        """
        if self.done or self.current_elt is not _MISSING:
            return
        elt = self.next_element()
        if elt is not EXHAUSTED:
            self.current_elt = elt

    def is_dropped(self, group: int) -> bool:
        return self.dropped_group is not None and group <= self.dropped_group

    def drop_group(self, client: int):
        # only the highest dropped index matters
        if self.dropped_group is None or client > self.dropped_group:
            self.dropped_group = client

    def check_invariants(self):
        if not self.bottom_group <= self.oldest_buffered_group:
            raise InvariantError(
                f"bottom_group {self.bottom_group} is above "
                f"oldest_buffered_group {self.oldest_buffered_group}"
            )
        # a drained top_group may already be read out before the next group starts
        limit = self.top_group + 1 if self.tail_drained else self.top_group
        if self.oldest_buffered_group > limit and not self.done:
            raise InvariantError(
                f"oldest_buffered_group {self.oldest_buffered_group} is above "
                f"top_group {self.top_group}"
            )
        if len(self.buffer) > self.top_group + 1 - self.bottom_group:
            raise InvariantError(
                f"Buffer holds {len(self.buffer)} slots for groups "
                f"{self.bottom_group}..{self.top_group}"
            )
        if self.current_elt is not _MISSING and self.last_was_none:
            raise InvariantError("Lookahead element pending right after a terminator")

    def stats(self) -> DefrayStats:
        return DefrayStats(
            top_group=self.top_group,
            oldest_buffered_group=self.oldest_buffered_group,
            bottom_group=self.bottom_group,
            dropped_group=self.dropped_group,
            buffer_slots=len(self.buffer),
            buffered_elements=sum(len(queue) for queue in self.buffer) + len(self.draining or ()),
            buffer_allocations=self.buffer_allocations,
            terminators_seen=self.current_index,
            lookahead_pending=self.current_elt is not _MISSING,
            done=self.done,
        )


class Defray:
    """
    Storage for the lazy splitting of one frayed iterator.

    Iterating a Defray yields Group iterators, one per group. Several Group
    iterators may be alive at once and read in any interleaving; elements of
    a group that is passed over are buffered until its iterator asks for
    them.

    Usage:
        for group in Defray(frayed_iterator):
            with group:
                process(list(group))
    """

    def __init__(self, iterable: Iterable[Any], *, check_invariants: Optional[bool] = None):
        if check_invariants is None:
            check_invariants = get_settings().check_invariants
        self._check_invariants = check_invariants
        self._cell = ExclusiveCell(_DefrayState(iterable, check_invariants))
        # discovery counter shared by every Groups cursor over this Defray
        self._index = 0

    def request(self, client: int):
        """Return the next element of group `client`, or EXHAUSTED."""
        with self._cell.borrow_mut() as state:
            elt = state.step(client)
            if self._check_invariants:
                state.check_invariants()
            return elt

    def notify_dropped(self, client: int):
        """Record that group `client` will not be read any further."""
        with self._cell.borrow_mut() as state:
            state.drop_group(client)
        logger.debug(f"Group {client} closed")

    def _next_group(self) -> Optional["Group"]:
        with self._cell.borrow_mut() as state:
            if state.done:
                return None
            index = self._index
            elt = state.step(index)
            if elt is EXHAUSTED:
                state.lookahead()
            # a producer exception above leaves the index to be retried
            self._index = index + 1
            if self._check_invariants:
                state.check_invariants()
            if elt is EXHAUSTED and state.done:
                logger.debug(f"No group {index}; splitting finished")
                return None
        return Group(self, index, elt)

    def groups(self) -> "Groups":
        return Groups(self)

    def __iter__(self) -> "Groups":
        return Groups(self)

    def map(self, fn: Callable[["Group"], Any]) -> "DefrayMap":
        """Apply fn to each group in turn, closing the group afterwards."""
        return DefrayMap(self, fn)

    @property
    def busy(self) -> bool:
        """True while engine state is borrowed."""
        return self._cell.borrowed

    @property
    def producer(self) -> Iterator[Any]:
        return self._cell.borrow().iter

    def into_inner(self) -> Iterator[Any]:
        """Give back the wrapped producer."""
        return self._cell.into_inner().iter

    def stats(self) -> DefrayStats:
        with self._cell.borrow_mut() as state:
            return state.stats()

    def __repr__(self):
        stats = self.stats()
        return (
            f"Defray(top_group={stats.top_group}, buffer_slots={stats.buffer_slots}, "
            f"dropped_group={describe_index(stats.dropped_group)}, done={stats.done})"
        )


class Groups:
    """Iterator yielding the Group iterators of a Defray."""

    def __init__(self, parent: Defray):
        self._parent = parent

    def __iter__(self):
        return self

    def __next__(self) -> "Group":
        group = self._parent._next_group()
        if group is None:
            raise StopIteration
        return group


class Group:
    """
    Iterator over the elements of a single group.

    The engine is told once when the group is finished with, whether it ran
    to exhaustion, was closed, left a `with` block, or was garbage collected.
    """

    def __init__(self, parent: Defray, index: int, first=EXHAUSTED):
        self.parent = parent
        self.index = index
        self._first = first
        self._closed = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._closed:
            raise StopIteration
        if self._first is not EXHAUSTED:
            elt, self._first = self._first, EXHAUSTED
            return elt
        elt = self.parent.request(self.index)
        if elt is EXHAUSTED:
            self.close()
            raise StopIteration
        return elt

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._first = EXHAUSTED
        self.parent.notify_dropped(self.index)

    def __enter__(self) -> "Group":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self):
        # collection can happen mid-request; the notice is advisory, skip it then
        if not getattr(self, '_closed', True) and not self.parent.busy:
            self.close()

    def __repr__(self):
        return f"Group(index={self.index}, closed={self._closed})"


class DefrayMap:
    """Re-iterable view applying a function to every group of a Defray."""

    def __init__(self, into: Defray, fn: Callable[[Group], Any]):
        self.into = into
        self.fn = fn

    def __iter__(self):
        for group in self.into:
            with group:
                yield self.fn(group)
