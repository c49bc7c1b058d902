#!/usr/bin/env python3
"""Tests for the rolling-window aggregation store."""
import numpy as np
import pytest

from heatscope.series import AggregationRecord, TOTAL, DECOMPOSED
from heatscope.store import AggregationStore, InvariantViolation


def total(value):
    return AggregationRecord(TOTAL, (), value)


def keyed(key, value):
    return AggregationRecord(DECOMPOSED, (key,), value)


def cycle(store, sample, records):
    """One sampler cycle: ingest then evict."""
    store.ingest(sample, records)
    return store.evict(sample)


def test_window_invariant():
    """After ingesting 1..3601 with a 3600 window, sample 1 is gone."""
    store = AggregationStore(window=3600)

    for sample in range(1, 3602):
        cycle(store, sample, [total(sample), keyed("cpu0", sample)])

    assert 1 not in store.total_series()
    assert 3601 in store.total_series()
    assert min(store.total_series()) == 2
    assert len(store.total_series()) == 3600

    assert 1 not in store.decomposed_series("cpu0")
    assert store.presence()["cpu0"] == 3600


def test_eviction_catches_up_after_skipped_ticks():
    """Samples skipped by a late tick are still evicted."""
    store = AggregationStore(window=5)
    for sample in range(1, 6):
        cycle(store, sample, [total(sample), keyed("a", sample)])

    evicted = cycle(store, 8, [total(8)])

    assert evicted == 3
    assert sorted(store.total_series()) == [4, 5, 8]
    assert sorted(store.decomposed_series("a")) == [4, 5]
    assert store.presence()["a"] == 2


def test_gap_wider_than_window_sweeps_everything():
    """A jump past the whole window leaves only the new sample."""
    store = AggregationStore(window=5)
    for sample in range(1, 6):
        cycle(store, sample, [total(sample), keyed("a", sample), keyed("b", sample)])

    cycle(store, 100, [total(100), keyed("a", 100)])

    assert list(store.total_series()) == [100]
    assert store.presence() == {"a": 1, "b": 0}
    # Keys with nothing retained keep their entry
    assert store.keys() == ["a", "b"]
    assert len(store.decomposed_series("b")) == 0


def test_total_must_be_unkeyed():
    store = AggregationStore()
    with pytest.raises(InvariantViolation, match="unkeyed"):
        store.ingest(1, [AggregationRecord(TOTAL, ("cpu0",), 1)])


def test_decomposed_needs_exactly_one_key():
    store = AggregationStore()
    with pytest.raises(InvariantViolation, match="one key"):
        store.ingest(1, [AggregationRecord(DECOMPOSED, (), 1)])
    with pytest.raises(InvariantViolation, match="one key"):
        store.ingest(1, [AggregationRecord(DECOMPOSED, ("a", "b"), 1)])


def test_third_aggregation_rejected():
    store = AggregationStore()
    with pytest.raises(InvariantViolation, match="at most two"):
        store.ingest(1, [AggregationRecord(3, (), 1)])


def test_rejected_batch_leaves_store_untouched():
    """Validation happens before any record of the batch is written."""
    store = AggregationStore()
    with pytest.raises(InvariantViolation):
        store.ingest(1, [total(5), keyed("a", 1), AggregationRecord(3, (), 1)])

    assert len(store.total_series()) == 0
    assert store.keys() == []
    assert store.latest_sample is None


def test_presence_matches_retained_samples():
    """Presence equals the retained count after any ingest/evict sequence."""
    rng = np.random.default_rng(7)
    window = 10
    store = AggregationStore(window=window)
    sample = 100

    for _ in range(300):
        sample += int(rng.choice([0, 1, 1, 1, 2, 5]))
        keys = [k for k in ("a", "b", "c", "d") if rng.random() < 0.5]
        cycle(store, sample, [total(1)] + [keyed(k, 1) for k in keys])

        for key in store.keys():
            series = store.decomposed_series(key)
            assert store.presence()[key] == len(series)
            assert all(sample - window < s <= sample for s in series)

        assert all(sample - window < s <= sample for s in store.total_series())


def test_repeated_sample_does_not_inflate_presence():
    store = AggregationStore()
    cycle(store, 5, [keyed("a", 1)])
    cycle(store, 5, [keyed("a", 2)])

    assert store.presence()["a"] == 1
    assert store.decomposed_series("a")[5] == 2


def test_regressing_sample_rejected():
    store = AggregationStore()
    cycle(store, 10, [total(1)])
    with pytest.raises(ValueError):
        store.ingest(9, [total(1)])


def test_accessors_are_read_only():
    store = AggregationStore()
    cycle(store, 1, [total(1), keyed("a", 1)])

    with pytest.raises(TypeError):
        store.total_series()[2] = 1
    with pytest.raises(TypeError):
        store.presence()["a"] = 5
    assert store.decomposed_series("missing") is None


def test_snapshot_is_isolated_from_later_cycles():
    store = AggregationStore(window=3)
    for sample in range(1, 4):
        cycle(store, sample, [total(sample), keyed("a", sample)])

    snap = store.snapshot()
    cycle(store, 4, [total(4), keyed("b", 4)])

    assert snap.sample == 3
    assert sorted(snap.total) == [1, 2, 3]
    assert snap.presence == {"a": 3}
    assert snap.keys() == ["a"]
    assert store.presence() == {"a": 2, "b": 1}


def test_snapshot_range():
    store = AggregationStore()
    for sample in range(1, 11):
        cycle(store, sample, [total(sample), keyed("a", sample)])
    cycle(store, 11, [keyed("b", 11)])

    snap = store.snapshot(4, 7)

    assert sorted(snap.total) == [4, 5, 6]
    assert sorted(snap.decomposed["a"]) == [4, 5, 6]
    assert snap.decomposed["b"] == {}
    assert snap.presence == {"a": 10, "b": 1}


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        AggregationStore(window=0)
