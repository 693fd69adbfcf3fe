"""Probabilistic counting sketches usable as conflict-free replicated counters."""

from __future__ import annotations

import math
import random
from typing import Protocol

U64_MAX = (1 << 64) - 1
"""Value returned by :meth:`ProbabilisticCounter.evaluate` for an infinite count."""

_U32_BITS = 32


class CounterError(Exception):
    """Raised when a counter cannot be incremented or merged."""


class RandomnessSource(Protocol):
    def next_u32(self) -> int: ...


class RandomSource:
    """A seeded source of uniformly distributed 32-bit values."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def next_u32(self) -> int:
        return self._rng.getrandbits(_U32_BITS)


class ProbabilisticCounter:
    """A set of Flajolet-Martin style bit sketches counting distinct elements."""

    SCALING_FACTOR = 1.29281

    def __init__(self, bits_per_instance: int, num_instances: int) -> None:
        if num_instances <= 0:
            raise ValueError("the number of instances must be positive")
        if not 0 < bits_per_instance <= _U32_BITS:
            raise ValueError(f"bits per instance must be in [1..{_U32_BITS}]")
        if bits_per_instance % 8 != 0:
            raise ValueError("bits per instance must be a multiple of 8")
        self._bits = bits_per_instance
        self._sketches = [0] * num_instances

    @classmethod
    def with_same_config(cls, other: ProbabilisticCounter) -> ProbabilisticCounter:
        """Create a zero counter configured like another one."""
        return cls(other.bits_per_instance, other.num_instances)

    @property
    def num_instances(self) -> int:
        return len(self._sketches)

    @property
    def bits_per_instance(self) -> int:
        return self._bits

    @property
    def _full(self) -> int:
        return (1 << self._bits) - 1

    @staticmethod
    def uniform_u32_to_geometric(rand_no: int, num_bits: int) -> int:
        """Map a uniform value to a geometric one: the index of its lowest set bit."""
        value = rand_no & ((1 << num_bits) - 1)
        if value == 0:
            return 1
        return (value & -value).bit_length() - 1

    @staticmethod
    def geometric_to_sample_u32(geom_no: int) -> int:
        """Return a uniform value that selects the given bit."""
        if not 0 <= geom_no < _U32_BITS:
            raise ValueError(f"geometric value must be in [0..{_U32_BITS - 1}]")
        return 1 << geom_no

    def _check_position(self, instance_idx: int, bit_idx: int) -> None:
        if not 0 <= instance_idx < len(self._sketches):
            raise IndexError(f"instance index {instance_idx} out of range")
        if not 0 <= bit_idx < self._bits:
            raise IndexError(f"bit index {bit_idx} out of range")

    def get_bit(self, instance_idx: int, bit_idx: int) -> bool:
        self._check_position(instance_idx, bit_idx)
        return bool((self._sketches[instance_idx] >> bit_idx) & 1)

    def set_bit(self, instance_idx: int, bit_idx: int, value: bool) -> None:
        self._check_position(instance_idx, bit_idx)
        if value:
            self._sketches[instance_idx] |= 1 << bit_idx
        else:
            self._sketches[instance_idx] &= ~(1 << bit_idx)

    def set_to_zero(self) -> None:
        """Make the counter count no elements."""
        self._sketches = [0] * len(self._sketches)

    def set_to_infinity(self) -> None:
        """Make the counter count every possible element."""
        self._sketches = [self._full] * len(self._sketches)

    def count_one_more(self, rs: RandomnessSource) -> None:
        """Count one more element; fails, leaving the counter intact, at infinity."""
        if self.evaluate() == U64_MAX:
            raise CounterError("Counter is at infinity.")
        self._sketches = [
            sketch | (1 << self.uniform_u32_to_geometric(rs.next_u32(), self._bits))
            for sketch in self._sketches
        ]

    def merge_with(self, other: ProbabilisticCounter) -> None:
        """Merge another counter into this one; fails if they are incompatible."""
        if self.num_instances != other.num_instances:
            raise CounterError("Different number of instances.")
        if self.bits_per_instance != other.bits_per_instance:
            raise CounterError("Different number of bits per instance.")
        self._sketches = [a | b for a, b in zip(self._sketches, other._sketches)]

    def evaluate(self) -> int:
        """Estimate the number of counted elements; ``U64_MAX`` means infinity."""
        if not any(self._sketches):
            return 0
        first_zeros = []
        for sketch in self._sketches:
            if sketch == self._full:
                return U64_MAX
            first_zeros.append((~sketch & (sketch + 1)).bit_length() - 1)
        average = sum(first_zeros) / len(first_zeros)
        return math.floor(self.SCALING_FACTOR * 2.0**average + 0.5)

    def __copy__(self) -> ProbabilisticCounter:
        clone = ProbabilisticCounter(self._bits, len(self._sketches))
        clone._sketches = list(self._sketches)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProbabilisticCounter):
            return NotImplemented
        return self._bits == other._bits and self._sketches == other._sketches

    def __repr__(self) -> str:
        return (
            f"ProbabilisticCounter(bits_per_instance={self._bits}, "
            f"sketches={[format(s, f'0{self._bits}b') for s in self._sketches]})"
        )