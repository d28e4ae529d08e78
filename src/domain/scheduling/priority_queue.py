"""
Binary-heap priority queue with FIFO tie-breaking.
Zero external dependencies: pure Python only.

Higher priority values pop first. Among equal values the earliest push pops
first: every push gets a sequence number unique to the queue instance, so no
two items ever compare equal.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from src.domain.errors import DuplicateSequenceError, EmptyQueueError

T = TypeVar("T")


@dataclass(frozen=True)
class PriorityKey:
    value: int
    sequence: int


@dataclass
class _QueuedItem(Generic[T]):
    payload: T
    priority: PriorityKey


def _compare(a: PriorityKey, b: PriorityKey) -> int:
    """Return 1 if a outranks b, -1 if b outranks a."""
    if a.value > b.value:
        return 1
    if a.value < b.value:
        return -1
    if a.sequence < b.sequence:
        return 1
    if a.sequence > b.sequence:
        return -1
    raise DuplicateSequenceError(f"items share sequence number {a.sequence}")


class PriorityQueue(Generic[T]):
    def __init__(self) -> None:
        self._heap: list[_QueuedItem[T]] = []
        # Total number of pushes, not the current size.
        self._count = 0

    def __len__(self) -> int:
        return len(self._heap)

    def size(self) -> int:
        return len(self._heap)

    def push(self, item: T, priority: int = 0) -> None:
        self._count += 1
        key = PriorityKey(value=priority, sequence=self._count)
        heap = self._heap
        idx = len(heap)
        heap.append(_QueuedItem(item, key))
        # Sift up.
        while idx > 0:
            parent = (idx - 1) >> 1
            if _compare(key, heap[parent].priority) <= 0:
                break
            heap[parent], heap[idx] = heap[idx], heap[parent]
            idx = parent

    def pop(self) -> T:
        heap = self._heap
        if not heap:
            raise EmptyQueueError("queue is empty")
        root = heap[0].payload
        last = heap.pop()
        if heap:
            heap[0] = last
            idx = 0
            size = len(heap)
            # Sift down.
            while True:
                left = 2 * idx + 1
                if left >= size:
                    break
                right = left + 1
                child = left
                if right < size and _compare(heap[right].priority, heap[left].priority) > 0:
                    child = right
                if _compare(heap[child].priority, heap[idx].priority) <= 0:
                    break
                heap[child], heap[idx] = heap[idx], heap[child]
                idx = child
        return root
