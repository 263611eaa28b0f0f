import pytest
from collections import deque

from frayed import Defray, from_groups
from frayed.utils import measure_memory


def _layout(num_groups, group_size):
    return [list(range(g * group_size, (g + 1) * group_size)) for g in range(num_groups)]


class TestBufferAllocation:
    """Test when the engine does and does not buffer"""

    def test_in_order_consumption_never_buffers(self):
        """Test that in-order draining leaves the buffer untouched"""
        layout = _layout(100, 10)
        defray = Defray(from_groups(layout), check_invariants=True)

        result = []
        for group in defray:
            result.append(list(group))
            stats = defray.stats()
            assert stats.buffer_slots == 0, f"Buffer grew to {stats.buffer_slots} slots"
            assert stats.buffer_allocations == 0

        assert result == layout
        assert defray.stats().done

    def test_closing_unread_groups_never_buffers(self):
        """Test that groups closed unread are skipped, not buffered"""
        defray = Defray(from_groups(_layout(50, 20)))

        indices = []
        for group in defray:
            indices.append(group.index)
            group.close()

        assert indices == list(range(50))
        stats = defray.stats()
        assert stats.buffer_allocations == 0
        assert stats.buffered_elements == 0

    def test_dropped_group_tail_is_discarded(self):
        """Test that a closed group's remaining elements are not stored"""
        layout = [[0] * 1000, [1, 2], [3]]

        kept = Defray(from_groups(layout))
        kept_groups = iter(kept)
        first = next(kept_groups)
        second = next(kept_groups)
        assert kept.stats().buffered_elements == 999

        dropped = Defray(from_groups(layout))
        dropped_groups = iter(dropped)
        next(dropped_groups).close()
        second_after_drop = next(dropped_groups)
        assert dropped.stats().buffered_elements == 0
        assert dropped.stats().buffer_allocations == 0

        assert list(second) == list(second_after_drop) == [1, 2]
        assert list(first) == [0] * 1000

    def test_reverse_drain_reclaims_everything(self, seven):
        """Test that draining every buffered group frees the buffer"""
        defray = Defray(seven)
        groups = list(defray)
        assert defray.stats().buffered_elements == 2

        for group in reversed(groups):
            list(group)

        stats = defray.stats()
        assert stats.buffer_slots == 0
        assert stats.buffered_elements == 0
        assert stats.oldest_buffered_group == stats.bottom_group

    def test_terminators_are_counted(self, seven):
        """Test the terminator count after a full in-order run"""
        defray = Defray(seven)
        for group in defray:
            list(group)
        assert defray.stats().terminators_seen == 4


class TestBufferCompaction:
    """Test reclamation of drained buffer slots"""

    @pytest.mark.parametrize("window", [2, 3, 5])
    def test_sliding_window_keeps_buffer_bounded(self, window):
        """Test that buffer width tracks live groups, not total groups"""
        layout = _layout(200, 3)
        defray = Defray(from_groups(layout), check_invariants=True)

        live = deque()
        result = []
        max_slots = 0
        for group in defray:
            live.append(group)
            if len(live) > window:
                result.append(list(live.popleft()))
            max_slots = max(max_slots, defray.stats().buffer_slots)
        while live:
            result.append(list(live.popleft()))

        assert result == layout
        assert max_slots <= 2 * window, f"Buffer reached {max_slots} slots for a window of {window}"
        assert defray.stats().buffer_allocations >= 190

    def test_compaction_waits_for_half_the_buffer(self):
        """Test that spent slots are released once they reach half the buffer"""
        defray = Defray(from_groups(_layout(5, 2)))
        groups = list(defray)
        assert defray.stats().buffer_slots == 5

        list(groups[0])
        stats = defray.stats()
        assert stats.oldest_buffered_group == 1
        assert stats.buffer_slots == 5, "One spent slot of five should not compact yet"

        list(groups[1])
        list(groups[2])
        stats = defray.stats()
        assert stats.bottom_group == 3
        assert stats.buffer_slots == 2

    def test_out_of_order_drain_skips_empty_slots(self, seven):
        """Test that reclaiming skips slots already drained by later groups"""
        defray = Defray(seven)
        groups = list(defray)

        list(groups[1])
        stats = defray.stats()
        assert stats.oldest_buffered_group == 0

        list(groups[0])
        stats = defray.stats()
        assert stats.oldest_buffered_group == 3
        assert stats.buffer_slots == 0


class TestMemoryEfficiency:
    """Test memory usage of in-order versus buffered consumption"""

    @staticmethod
    def _source():
        return from_groups(range(g * 100, (g + 1) * 100) for g in range(1000))

    def test_in_order_memory_is_flat(self):
        """Test that in-order sums do not grow with input size"""
        report = measure_memory(lambda: list(Defray(self._source()).map(sum)))

        assert len(report.result) == 1000
        assert report.result[0] == sum(range(100))
        assert report.peak_bytes < 1_000_000, f"Used too much memory: {report.peak_bytes} bytes"

    def test_buffered_memory_exceeds_in_order(self):
        """Test that holding every group alive forces buffering"""

        def in_order():
            return [sum(group) for group in Defray(self._source())]

        def all_alive():
            groups = list(Defray(self._source()))
            return [sum(group) for group in reversed(groups)][::-1]

        flat = measure_memory(in_order)
        buffered = measure_memory(all_alive)

        assert flat.result == buffered.result
        assert flat.peak_bytes < buffered.peak_bytes
