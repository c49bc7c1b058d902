"""Rolling-window store for total and decomposed aggregation series."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional
import logging

from heatscope.series import AggregationRecord, Series, TOTAL, DECOMPOSED

logger = logging.getLogger(__name__)


class InvariantViolation(Exception):
    """The instrumentation program does not have the shape the store expects."""


@dataclass(frozen=True)
class StoreSnapshot:
    """Value copy of the store taken at one instant.

    ``total`` and ``decomposed`` only hold the samples requested when the
    snapshot was taken; ``decomposed`` has an entry for every known key.
    """
    sample: Optional[int]
    total: Series
    decomposed: Dict[str, Series]
    presence: Dict[str, int]

    def keys(self) -> List[str]:
        """All known decomposition keys, lexicographically ordered."""
        return sorted(self.decomposed)


def _slice(series: Series, start: Optional[int], stop: Optional[int]) -> Series:
    """Copy the samples of ``series`` that fall in ``[start, stop)``."""
    if start is None or stop is None:
        return dict(series)

    if stop - start <= len(series):
        return {s: series[s] for s in range(start, stop) if s in series}

    return {s: v for s, v in series.items() if start <= s < stop}


class AggregationStore:
    """Total series, per-key decomposed series and per-key presence counters.

    Only the sampler writes to the store, one complete ingest/evict cycle at a
    time. Readers go through the accessors or :meth:`snapshot`.
    """

    def __init__(self, window: int = 3600):
        if window <= 0:
            raise ValueError("window must be positive")

        self.window = window
        self._total: Series = {}
        self._decomposed: Dict[str, Series] = {}
        self._presence: Dict[str, int] = {}

        self.latest_sample: Optional[int] = None
        # Oldest sample that may still be retained
        self._oldest: Optional[int] = None

    def ingest(self, sample: int, records: Iterable[AggregationRecord]) -> int:
        """
        Store one cycle's records at ``sample``.

        The batch is validated as a whole first, so a rejected batch leaves
        the store untouched.

        Args:
            sample: Current sample (seconds)
            records: Records drained from the instrumentation source

        Returns:
            Number of records stored
        """
        if self.latest_sample is not None and sample < self.latest_sample:
            raise ValueError(
                f"Sample {sample} precedes latest ingested sample {self.latest_sample}"
            )

        records = list(records)
        for record in records:
            self._check_shape(record)

        for record in records:
            if record.aggregation == TOTAL:
                self._total[sample] = record.value
                continue

            key = record.key[0]
            series = self._decomposed.get(key)
            if series is None:
                series = self._decomposed[key] = {}
                self._presence[key] = 0
                logger.debug(f"New decomposition key: {key}")

            if sample not in series:
                self._presence[key] += 1
            series[sample] = record.value

        if self._oldest is None:
            self._oldest = sample
        self.latest_sample = sample

        return len(records)

    def _check_shape(self, record: AggregationRecord):
        """Reject records that do not fit the two-aggregation contract."""
        if record.aggregation == TOTAL:
            if len(record.key) != 0:
                raise InvariantViolation(
                    f"first aggregation must be unkeyed ({record.describe()})"
                )
        elif record.aggregation == DECOMPOSED:
            if len(record.key) != 1:
                raise InvariantViolation(
                    f"second aggregation must have one key ({record.describe()})"
                )
        else:
            raise InvariantViolation(
                f"expected at most two aggregations ({record.describe()})"
            )

    def evict(self, sample: int) -> int:
        """
        Drop every sample at or before ``sample - window``.

        One sample per cycle at the normal cadence; skipped ticks are caught up
        sample by sample, and a gap wider than the window sweeps everything.

        Returns:
            Number of samples evicted
        """
        if self._oldest is None:
            return 0

        horizon = sample - self.window
        if self._oldest > horizon:
            return 0

        if horizon - self._oldest >= self.window:
            evicted = self._sweep(horizon)
        else:
            evicted = 0
            for stale in range(self._oldest, horizon + 1):
                if self._evict_sample(stale):
                    evicted += 1

        self._oldest = horizon + 1
        return evicted

    def _evict_sample(self, stale: int) -> bool:
        """Remove one sample from every series."""
        found = self._total.pop(stale, None) is not None

        for key, series in self._decomposed.items():
            if stale in series:
                del series[stale]
                self._presence[key] -= 1
                found = True

        return found

    def _sweep(self, horizon: int) -> int:
        """Remove all samples at or before ``horizon`` in one pass."""
        stale = {s for s in self._total if s <= horizon}
        for s in list(stale):
            del self._total[s]

        for key, series in self._decomposed.items():
            expired = [s for s in series if s <= horizon]
            for s in expired:
                del series[s]
            self._presence[key] = len(series)
            stale.update(expired)

        logger.info(f"Swept {len(stale)} stale samples up to {horizon}")
        return len(stale)

    def total_series(self) -> Mapping[int, object]:
        """Read-only view of the total series."""
        return MappingProxyType(self._total)

    def decomposed_series(self, key: str) -> Optional[Mapping[int, object]]:
        """Read-only view of one key's series, or None if the key is unknown."""
        series = self._decomposed.get(key)
        if series is None:
            return None
        return MappingProxyType(series)

    def presence(self) -> Mapping[str, int]:
        """Read-only view of the presence counters."""
        return MappingProxyType(self._presence)

    def keys(self) -> List[str]:
        """All known decomposition keys, lexicographically ordered."""
        return sorted(self._decomposed)

    def retained_samples(self) -> int:
        """Number of samples held in the total series."""
        return len(self._total)

    def snapshot(self, start: Optional[int] = None, stop: Optional[int] = None) -> StoreSnapshot:
        """Copy the store, restricting series to samples in ``[start, stop)``."""
        return StoreSnapshot(
            sample=self.latest_sample,
            total=_slice(self._total, start, stop),
            decomposed={
                key: _slice(series, start, stop)
                for key, series in self._decomposed.items()
            },
            presence=dict(self._presence),
        )
