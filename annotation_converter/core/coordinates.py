#!/usr/bin/env python3

"""
Coordinate and strand primitives.

Intervals are stored 1-based and inclusive (the GFF convention). Conversion
to and from the 0-based half-open convention used by refFlat happens only at
the format boundary through the helpers below.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Tuple


class Strand(Enum):
    """Strand orientation of a feature."""
    FORWARD = '+'
    REVERSE = '-'
    UNKNOWN = '.'

    @classmethod
    def from_symbol(cls, symbol: str) -> 'Strand':
        """Map a strand column value to a Strand ('.', '?' and others are UNKNOWN)."""
        symbol = symbol.strip()
        if symbol == '+':
            return cls.FORWARD
        if symbol == '-':
            return cls.REVERSE
        return cls.UNKNOWN

    @property
    def symbol(self) -> str:
        """Get the column representation of the strand."""
        return self.value

    @property
    def is_known(self) -> bool:
        return self is not Strand.UNKNOWN


@dataclass(frozen=True)
class Interval:
    """A genomic interval, 1-based and inclusive on both ends."""
    start: int
    end: int

    def __post_init__(self):
        """Validate interval data after initialization."""
        if self.start < 0 or self.end < 0:
            raise ValueError(f"Negative interval coordinates: {self.start}-{self.end}")
        if self.start > self.end:
            raise ValueError(f"Invalid interval coordinates: {self.start}-{self.end}")

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"

    @property
    def length(self) -> int:
        """Get interval length."""
        return self.end - self.start + 1

    def to_zero_based_half_open(self) -> Tuple[int, int]:
        """Return (start, end) in the 0-based half-open convention."""
        return self.start - 1, self.end

    @classmethod
    def from_zero_based_half_open(cls, start: int, end: int) -> 'Interval':
        """Build an interval from 0-based half-open coordinates."""
        return cls(start + 1, end)

    def overlaps(self, other: 'Interval') -> bool:
        """Check if this interval shares at least one base with another."""
        return not (self.end < other.start or self.start > other.end)

    def contains(self, other: 'Interval') -> bool:
        """Check if another interval lies fully inside this one."""
        return self.start <= other.start and other.end <= self.end

    def widen(self, other: 'Interval') -> 'Interval':
        """Return the envelope of this interval and another."""
        return Interval(min(self.start, other.start), max(self.end, other.end))

    def intersection(self, other: 'Interval') -> 'Interval':
        """Return the shared part of two overlapping intervals."""
        if not self.overlaps(other):
            raise ValueError(f"Intervals {self} and {other} do not overlap")
        return Interval(max(self.start, other.start), min(self.end, other.end))

    @classmethod
    def envelope(cls, intervals: Iterable['Interval']) -> 'Interval':
        """Minimal interval containing every interval given."""
        intervals = list(intervals)
        if not intervals:
            raise ValueError("Cannot compute the envelope of no intervals")
        return cls(min(iv.start for iv in intervals), max(iv.end for iv in intervals))
