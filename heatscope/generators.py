"""Value generators and quantization for synthetic aggregations."""
from collections import Counter
from typing import Dict
import numpy as np
from abc import ABC, abstractmethod

from heatscope.config import SourceConfig
from heatscope.series import Distribution


class ValueGenerator(ABC):
    """Base class for synthetic event generators."""

    def __init__(self, config: SourceConfig, global_seed: int):
        self.config = config

        # Initialize RNG with deterministic seed
        seed = config.seed if config.seed is not None else global_seed
        self.rng = np.random.default_rng(seed)

    @abstractmethod
    def draw(self, n: int) -> np.ndarray:
        """Draw ``n`` event values."""
        pass

    def count(self, t_s: int, weight: float = 1.0) -> int:
        """Number of events for one key during the tick at ``t_s``."""
        rate = self._apply_diurnal_modulation(t_s, self.config.base_rate * weight)
        return int(self.rng.poisson(max(rate, 0.0)))

    def _apply_diurnal_modulation(self, t_s: int, base_value: float) -> float:
        """Apply time-of-day sinusoidal modulation."""
        if not self.config.diurnal_amp:
            return base_value

        phase = (t_s % 86400) / 86400.0  # Normalized to [0, 1]
        phase_offset = self.config.diurnal_phase or 0.0
        modulation = 1 + self.config.diurnal_amp * np.sin(
            2 * np.pi * (phase + phase_offset)
        )
        return base_value * modulation


class LognormalGenerator(ValueGenerator):
    """Lognormal event values (latency-like)."""

    def draw(self, n: int) -> np.ndarray:
        mu = self.config.mu if self.config.mu is not None else 9.0
        sigma = self.config.sigma or 1.0
        return self.rng.lognormal(mu, sigma, size=n)


class ExponentialGenerator(ValueGenerator):
    """Exponential event values."""

    def draw(self, n: int) -> np.ndarray:
        lam = self.config.lam or 1e-4
        return self.rng.exponential(1.0 / lam, size=n)


class MixtureGenerator(ValueGenerator):
    """Event values from a weighted mixture of distributions."""

    def draw(self, n: int) -> np.ndarray:
        if not self.config.components:
            return self.rng.lognormal(9.0, 1.0, size=n)

        # Select component per event based on weights
        weights = np.array([c.weight for c in self.config.components], dtype=float)
        picks = self.rng.choice(
            len(self.config.components),
            size=n,
            p=weights / weights.sum()
        )

        values = np.empty(n)
        for idx, component in enumerate(self.config.components):
            mask = picks == idx
            size = int(mask.sum())
            if component.type == "exponential":
                lam = component.lam or 1e-4
                values[mask] = self.rng.exponential(1.0 / lam, size=size)
            else:
                mu = component.mu if component.mu is not None else 9.0
                sigma = component.sigma or 1.0
                values[mask] = self.rng.lognormal(mu, sigma, size=size)
        return values


def quantize(values: np.ndarray, mode: str = "log2", step: int = 1000) -> Distribution:
    """
    Bucket event values into integer ranges with counts.

    ``log2`` uses power-of-two ranges ``[2^k, 2^(k+1) - 1]`` with zero on its
    own; ``linear`` uses ranges of ``step`` width.
    """
    ints = np.floor(np.clip(values, 0, None)).astype(np.int64)
    counts: Dict[tuple, int] = Counter()

    if mode == "linear":
        for low in (ints // step * step).tolist():
            counts[(low, low + step - 1)] += 1
    else:
        zeros = int((ints == 0).sum())
        if zeros:
            counts[(0, 0)] = zeros
        for k in np.floor(np.log2(ints[ints > 0])).astype(np.int64).tolist():
            counts[(1 << k, (1 << (k + 1)) - 1)] += 1

    return sorted(counts.items())


def merge(distributions) -> Distribution:
    """Sum several distributions range by range."""
    counts: Dict[tuple, int] = Counter()
    for distribution in distributions:
        for value_range, count in distribution:
            counts[tuple(value_range)] += count
    return sorted(counts.items())


def create_generator(config: SourceConfig, global_seed: int) -> ValueGenerator:
    """Factory function to create appropriate generator."""
    algorithm = config.algorithm

    if algorithm == "lognormal":
        return LognormalGenerator(config, global_seed)
    elif algorithm == "exponential":
        return ExponentialGenerator(config, global_seed)
    elif algorithm == "mixture":
        return MixtureGenerator(config, global_seed)
    else:
        raise ValueError(f"Unknown algorithm: {algorithm}")
