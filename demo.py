from frayed import Defray, Frayed, from_groups, prefix, setup_logging


class SevenIter(Frayed):
    """Yields 1, 2, |, 4, 5, |, 7, |, | where | ends a group"""

    def __init__(self):
        self.n = 0

    def __next__(self):
        self.n += 1
        if self.n % 3 != 0 and self.n <= 7:
            return self.n
        raise StopIteration


setup_logging()

print("\n--- Demo: groups read in order (nothing buffered) ---")
defray = Defray(SevenIter())
for group in defray:
    print(f"  group: {list(group)}")
print(f"  stats: {defray.stats().model_dump()}")

print("\n--- Demo: groups read last to first (earlier groups buffered) ---")
defray = Defray(SevenIter())
groups = list(defray)
print(f"  discovered {len(groups)} groups, {defray.stats().buffered_elements} elements buffered")
for group in reversed(groups):
    print(f"  group {group.index}: {list(group)}")

print("\n--- Demo: dropping a group skips buffering its tail ---")
defray = Defray(from_groups([range(1000), [1, 2], [3]]))
cursor = iter(defray)
next(cursor).close()
second = next(cursor)
print(f"  buffered after drop: {defray.stats().buffered_elements}, second group: {list(second)}")

print("\n--- Demo: shared prefix before every group ---")
print(f"  sums: {list(Defray(prefix([1, 2], SevenIter())).map(sum))}")
for group in Defray(prefix([1, 2], SevenIter())):
    print(f"  group: {list(group)}")
