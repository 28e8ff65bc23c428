"""Order-preserving worker pool for independent units of work.

The pool is thread based so callers can pass closures over local state.
Threads only run truly in parallel while numpy, scipy and statsmodels are
inside compiled code that releases the GIL (such as LAPACK solves);
Python-level work such as SARIMAX model setup is serialized, so speedups
on CPU-bound fits stay well below the core count.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def resolve_workers(max_workers: Optional[int]) -> int:
    """Translate a worker setting into a concrete pool size.

    None or 0 means "all cores"; negative values count back from the number
    of cores (-1 = all cores, -2 = all but one), mirroring joblib's n_jobs.
    """
    cpus = os.cpu_count() or 1
    if max_workers is None or max_workers == 0:
        return cpus
    if max_workers < 0:
        return max(1, cpus + 1 + max_workers)
    return max_workers


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    max_workers: Optional[int] = 1,
) -> List[R]:
    """Apply ``func`` to every item and return the results in input order.

    Each call must be independent of the others: tasks never write to a
    shared slot, so no synchronization is needed beyond result collection.
    Exceptions raised by ``func`` propagate to the caller.

    Args:
        func: Function applied to each item.
        items: Work units.
        max_workers: Pool size (see resolve_workers). 1 runs sequentially
            in the calling thread.

    Returns:
        List with one result per item, positionally aligned with ``items``.
    """
    items = list(items)
    workers = min(resolve_workers(max_workers), max(len(items), 1))
    if workers <= 1:
        return [func(item) for item in items]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, items))
