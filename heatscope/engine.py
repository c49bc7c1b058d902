"""Sample clock: drains the instrumentation source into the store every tick."""
from collections import Counter
from typing import Callable, Optional
import asyncio
import logging
import time

from heatscope.prom_exporter import SelfMetrics
from heatscope.sources import AggregationSource, SourceError
from heatscope.store import AggregationStore, InvariantViolation

logger = logging.getLogger(__name__)


class SamplerEngine:
    """Periodic task that feeds the aggregation store.

    Each tick awaits the source's drain, then ingests and evicts without
    suspending, so readers on the same event loop always see whole cycles.
    """

    def __init__(
        self,
        store: AggregationStore,
        source: AggregationSource,
        tick_interval_s: float = 1,
        metrics: Optional[SelfMetrics] = None,
        on_fatal: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.source = source
        self.tick_interval_s = tick_interval_s
        self.metrics = metrics
        self.on_fatal = on_fatal
        self.clock = clock

        self.running = False
        self.tick_count = 0
        self.start_time = time.time()
        self._task: Optional[asyncio.Task] = None

    async def tick(self) -> Optional[int]:
        """
        Execute one ingestion cycle.

        Returns:
            The sample ingested, or None if the cycle was skipped

        Raises:
            InvariantViolation: the source emitted records of the wrong shape
            SourceError: the source cannot produce records any more
        """
        records = await self.source.drain()

        # No awaits past this point: ingest and evict form one atomic step
        tick_start = time.time()
        sample = int(self.clock())

        latest = self.store.latest_sample
        if latest is not None and sample < latest:
            logger.warning(
                f"Clock stepped back from {latest} to {sample}, skipping tick"
            )
            return None

        self.store.ingest(sample, records)
        evicted = self.store.evict(sample)

        self.tick_count += 1

        if self.metrics:
            for aggregation, count in Counter(r.aggregation for r in records).items():
                self.metrics.record_ingest(aggregation, count)
            self.metrics.record_evicted(evicted)
            self.metrics.set_store_size(len(self.store.keys()), self.store.retained_samples())
            self.metrics.record_tick_duration(time.time() - tick_start)

        if self.tick_count % 60 == 0:  # Log every 60 ticks
            logger.info(
                f"Tick {self.tick_count}: sample {sample}, {len(records)} records, "
                f"{self.store.retained_samples()} samples retained"
            )

        return sample

    async def run(self):
        """Run ticks at a fixed cadence until stopped or a fatal error."""
        self.running = True
        self.start_time = time.time()

        logger.info(f"Starting sampler ({self.tick_interval_s}s interval)")

        while self.running:
            tick_start = time.time()

            try:
                await self.tick()
            except (InvariantViolation, SourceError) as e:
                self.running = False
                self._fatal(str(e))
                return
            except Exception as e:
                logger.error(f"Error in tick: {e}", exc_info=True)
                if self.metrics:
                    self.metrics.record_source_error()

            # Sleep for remaining time in tick interval
            tick_duration = time.time() - tick_start
            sleep_time = max(0, self.tick_interval_s - tick_duration)

            if sleep_time > 0:
                await asyncio.sleep(sleep_time)
            else:
                logger.warning(
                    f"Tick took {tick_duration:.3f}s, longer than interval {self.tick_interval_s}s"
                )
                await asyncio.sleep(0)

    def _fatal(self, message: str):
        """Report an unrecoverable ingestion error."""
        logger.critical(f"Fatal ingestion error: {message}")
        if self.on_fatal:
            self.on_fatal(message)

    async def start(self):
        """Start the source and the tick loop."""
        await self.source.start()
        self._task = asyncio.create_task(self.run())
        logger.info("Sampler started")

    async def stop(self):
        """Stop the tick loop and close the source."""
        logger.info("Stopping sampler")
        self.running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.source.close()
