from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def batch_size_for(count: int, limit: int) -> int:
    if limit < 1:
        raise ValueError(f"concurrency limit must be >= 1, got {limit}")
    if count > 10_000:
        return max(limit * 10, 100)
    if count > 5_000:
        return max(limit * 20, 200)
    if count > 1_000:
        return max(limit * 50, 500)
    return max(count, 1)


def iter_batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def run_bounded(items: Sequence[T], fn: Callable[[T], R], limit: int) -> list[R]:
    """Apply ``fn`` to every item with at most ``limit`` calls in flight.

    Work is handed out in submission order and results come back in input
    order. The first exception raised by ``fn`` propagates once the pool
    has drained.
    """
    if limit < 1:
        raise ValueError(f"concurrency limit must be >= 1, got {limit}")
    if not items:
        return []
    workers = min(limit, len(items))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="flagsync-scan") as executor:
        return list(executor.map(fn, items))


def run_in_batches(
    items: Sequence[T],
    fn: Callable[[T], R],
    limit: int,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[R]:
    size = batch_size_for(len(items), limit)
    results: list[R] = []
    for batch in iter_batches(items, size):
        results.extend(run_bounded(batch, fn, limit))
        logger.debug("batch_complete done=%d total=%d", len(results), len(items))
        if on_progress is not None:
            on_progress(len(results), len(items))
    return results
