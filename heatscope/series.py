"""Data structures for aggregation records and series values."""
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple
import math

# Aggregation tags as numbered by the instrumentation program
TOTAL = 1
DECOMPOSED = 2

Range = Tuple[float, float]
Distribution = List[Tuple[Range, float]]
Series = Dict[int, Any]


@dataclass(frozen=True)
class AggregationRecord:
    """One aggregation entry drained from an instrumentation source."""
    aggregation: int
    key: Tuple[str, ...]
    value: Any

    def describe(self) -> str:
        """Short human readable form for diagnostics."""
        key = ",".join(self.key) if self.key else "-"
        return f"aggregation={self.aggregation} key=[{key}]"


def _number(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Unsupported aggregation value: {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Non-finite aggregation value: {value!r}")
    return value


def as_distribution(value) -> Distribution:
    """Normalize a raw aggregation value into a list of ranges.

    A bare number is a single observation at that value; anything else must be
    an iterable of ``((low, high), count)`` pairs. Bounds and counts must be
    finite numbers.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = _number(value)
        return [((value, value), 1)]

    if isinstance(value, (str, bytes, bool)):
        raise ValueError(f"Unsupported aggregation value: {value!r}")

    ranges = []
    for entry in value:
        (low, high), count = entry
        low, high, count = _number(low), _number(high), _number(count)
        if high < low:
            raise ValueError(f"Inverted range [{low}, {high}]")
        ranges.append(((low, high), count))
    return ranges
