"""
Seedable xorshift32 PRNG.

Every random decision of a generation run (tier shuffles, cycle edge
retention) is drawn from one of these, seeded from the query region, so that
repeating a query over the same region gives the same places and roads.
Python's random and NumPy's random must not be used for generation.
"""

from typing import List, MutableSequence, TypeVar

T = TypeVar("T")


def _uint32(n):
    """Convert to unsigned 32-bit integer."""
    return int(n) & 0xFFFFFFFF


class XorShiftPRNG:
    """
    Marsaglia xorshift32 generator (shifts 13, 17, 5).

    The state is kept as an unsigned 32-bit integer. A zero seed would be a
    fixed point of the recurrence, so it is replaced by 1.
    """

    def __init__(self, seed: int):
        self.call_count = 0

        state = _uint32(seed)
        if state == 0:
            state = 1
        self.state = state

    def next_uint32(self) -> int:
        self.call_count += 1
        x = self.state
        x ^= _uint32(x << 13)
        x ^= x >> 17
        x ^= _uint32(x << 5)
        self.state = x
        return x

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        return self.next_uint32() / 4294967296

    next_float = random

    def randint(self, min_value: int, max_value: int) -> int:
        """Random integer in [min_value, max_value)."""
        return int(self.random() * (max_value - min_value)) + min_value

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        """Fisher-Yates shuffle in place, walking down from the end."""
        current = len(items)
        while current != 0:
            index = int(self.random() * current)
            current -= 1
            items[current], items[index] = items[index], items[current]
        return items

    def shuffled_indices(self, count: int) -> List[int]:
        return list(self.shuffle(list(range(count))))
