"""Tests for the order-preserving worker pool."""

import os
import time

import pytest

from ozone_core.parallel import parallel_map, resolve_workers


def test_resolve_workers() -> None:
    cpus = os.cpu_count() or 1
    assert resolve_workers(1) == 1
    assert resolve_workers(3) == 3
    assert resolve_workers(None) == cpus
    assert resolve_workers(0) == cpus
    assert resolve_workers(-1) == cpus
    assert resolve_workers(-(cpus + 5)) == 1


def test_parallel_map_preserves_order() -> None:
    """Results line up with inputs even when later items finish first."""

    def slow_for_small(i: int) -> int:
        time.sleep(0.01 * (5 - i))
        return i * i

    assert parallel_map(slow_for_small, range(5), max_workers=5) == [0, 1, 4, 9, 16]
    assert parallel_map(slow_for_small, range(5), max_workers=1) == [0, 1, 4, 9, 16]


def test_parallel_map_empty_and_errors() -> None:
    assert parallel_map(str, [], max_workers=4) == []

    def boom(i: int) -> int:
        raise ValueError(f"item {i}")

    with pytest.raises(ValueError, match="item"):
        parallel_map(boom, [1, 2], max_workers=2)
