"""Instrumentation sources that produce aggregation records each tick."""
from abc import ABC, abstractmethod
from typing import List, Optional
import asyncio
import json
import logging
import time

from heatscope.cardinality import apply_key_cap, generate_keys, zipf_weights
from heatscope.config import Config, SourceConfig
from heatscope.generators import create_generator, merge, quantize
from heatscope.series import AggregationRecord, DECOMPOSED, TOTAL, as_distribution

logger = logging.getLogger(__name__)

# Longest record line accepted from an instrumentation program
RECORD_LINE_LIMIT = 16 * 1024 * 1024


class SourceError(RuntimeError):
    """The instrumentation source can no longer produce records."""


class AggregationSource(ABC):
    """Something the sampler can drain once per tick."""

    async def start(self):
        """Begin producing records."""

    @abstractmethod
    async def drain(self) -> List[AggregationRecord]:
        """Return the records available for the current tick."""
        pass

    async def close(self):
        """Release any resources held by the source."""


class SyntheticSource(AggregationSource):
    """Seeded random aggregations: a total plus one series per key."""

    def __init__(self, config: SourceConfig, global_seed: int = 42, clock=time.time):
        self.config = config
        self.clock = clock
        self.keys = apply_key_cap(
            generate_keys(config.keys),
            config.key_cap,
            config.sampling_strategy
        )
        self.weights = zipf_weights(len(self.keys), config.zipf_alpha)
        self.generator = create_generator(config, global_seed)

        logger.info(
            f"Synthetic source: {len(self.keys)} keys, "
            f"algorithm={config.algorithm}, quantize={config.quantize}"
        )

    def generate(self, t_s: int) -> List[AggregationRecord]:
        """Produce the records for the tick at ``t_s``."""
        records = []

        for key, weight in zip(self.keys, self.weights):
            n = self.generator.count(t_s, float(weight))
            if n == 0:
                continue

            values = self.generator.draw(n)
            records.append(AggregationRecord(
                DECOMPOSED,
                (key,),
                quantize(values, self.config.quantize, self.config.step)
            ))

        if records:
            total = merge(record.value for record in records)
            records.insert(0, AggregationRecord(TOTAL, (), total))

        return records

    async def drain(self) -> List[AggregationRecord]:
        return self.generate(int(self.clock()))


def parse_record_line(line: bytes) -> AggregationRecord:
    """
    Parse one JSON line emitted by an instrumentation program.

    Expected shape::

        {"aggregation": 2, "key": ["cpu0"], "value": [[[0, 1], 3], [[2, 3], 1]]}

    Raises:
        ValueError: if the line is not a well-formed record
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}")

    if not isinstance(data, dict):
        raise ValueError("record must be an object")

    aggregation = data.get("aggregation")
    if not isinstance(aggregation, int) or isinstance(aggregation, bool):
        raise ValueError(f"invalid aggregation: {aggregation!r}")

    key = data.get("key", [])
    if not isinstance(key, list):
        raise ValueError(f"invalid key: {key!r}")

    if "value" not in data:
        raise ValueError("record has no value")

    try:
        value = as_distribution(data["value"])
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid value: {e}")

    return AggregationRecord(aggregation, tuple(str(k) for k in key), value)


class CommandSource(AggregationSource):
    """Runs an instrumentation program and collects the records it prints.

    The program text is written to the command's stdin; the command prints one
    JSON record per line. Everything printed since the previous drain makes up
    the next batch.
    """

    def __init__(self, command: List[str], program: str, limit: int = RECORD_LINE_LIMIT):
        self.command = command
        self.program = program
        self.limit = limit
        self.process: Optional[asyncio.subprocess.Process] = None
        self._pending: List[AggregationRecord] = []
        self._reader: Optional[asyncio.Task] = None
        self._exited = False
        self._failure: Optional[Exception] = None

    async def start(self):
        """Launch the program and start reading its output."""
        logger.info(f"Starting instrumentation program: {' '.join(self.command)}")

        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=self.limit,
            )
        except OSError as e:
            raise SourceError(f"could not start {self.command[0]}: {e}")

        self.process.stdin.write(self.program.encode())
        await self.process.stdin.drain()
        self.process.stdin.close()

        self._reader = asyncio.create_task(self._read())

    async def _read(self):
        """Collect records until the program closes its output."""
        try:
            while True:
                try:
                    line = await self.process.stdout.readline()
                except (ValueError, asyncio.LimitOverrunError) as e:
                    logger.warning(
                        f"Skipping record line longer than {self.limit} bytes: {e}"
                    )
                    continue

                if not line:
                    break

                line = line.strip()
                if not line:
                    continue
                try:
                    self._pending.append(parse_record_line(line))
                except ValueError as e:
                    logger.warning(f"Skipping malformed record line: {e}")

            await self.process.wait()
        except Exception as e:
            logger.error(f"Failed reading instrumentation output: {e}", exc_info=True)
            self._failure = e
        else:
            logger.warning(
                f"Instrumentation program exited with status {self.process.returncode}"
            )
        self._exited = True

    async def drain(self) -> List[AggregationRecord]:
        if self.process is None:
            raise SourceError("instrumentation program was not started")

        if self._failure is not None:
            raise SourceError(f"could not read instrumentation output: {self._failure}")

        records, self._pending = self._pending, []
        if not records and self._exited:
            raise SourceError(
                f"instrumentation program exited with status {self.process.returncode}"
            )
        return records

    async def close(self):
        """Stop the program."""
        if self.process is not None and self.process.returncode is None:
            self.process.terminate()
            await self.process.wait()

        if self._reader is not None:
            await self._reader


def create_source(config: Config) -> AggregationSource:
    """Factory function to create the configured source."""
    if config.source.kind == "command":
        return CommandSource(config.source.command, config.program)

    return SyntheticSource(config.source, config.global_.seed)
