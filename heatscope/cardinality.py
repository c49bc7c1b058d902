"""Decomposition key space generation for synthetic sources."""
from typing import List, Optional
import hashlib
import numpy as np

from heatscope.config import KeySpec


def generate_keys(spec: KeySpec) -> List[str]:
    """Generate list of decomposition keys from specification."""
    if spec.values is not None:
        return list(spec.values)

    if spec.range is not None:
        start, end = spec.range
        fmt = spec.fmt or "{}"
        # Support both % formatting and {} formatting
        if '%' in fmt:
            return [fmt % i for i in range(start, end + 1)]
        else:
            return [fmt.format(i) for i in range(start, end + 1)]

    return []


def apply_key_cap(keys: List[str], cap: Optional[int], strategy: str) -> List[str]:
    """
    Limit the key space using the given sampling strategy.

    Args:
        keys: Full list of keys
        cap: Maximum number of keys (None for no limit)
        strategy: Sampling strategy ("first_n" or "hash")

    Returns:
        Sampled list of keys
    """
    if not cap or len(keys) <= cap:
        return keys

    if strategy == "hash":
        # Hash-based sampling for deterministic selection
        def key_hash(key: str) -> int:
            return int(hashlib.md5(key.encode()).hexdigest(), 16)

        return sorted(keys, key=key_hash)[:cap]

    return keys[:cap]


def zipf_weights(count: int, alpha: Optional[float]) -> np.ndarray:
    """Per-key rate weights with mean 1; the first keys are hottest."""
    if count == 0:
        return np.zeros(0)
    if not alpha:
        return np.ones(count)

    ranks = np.arange(1, count + 1, dtype=float)
    weights = ranks ** -alpha
    return weights * count / weights.sum()
