"""Bounded parallel executor for bulk GitHub mutations.

Runs a per-item operation over a list of inputs, optionally on a bounded
thread pool, and returns exactly one result per input in the original input
order. A failing item never affects its siblings.
"""

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, TypeVar

from src.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class ParallelResult(Generic[R]):
    """Outcome of one item of a parallel run.

    Attributes:
        index: Position of the originating item in the input sequence
        result: Value returned by the operation, or None if it raised
        error: Exception raised by the operation, or None on success
    """

    index: int
    result: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Whether the operation completed without raising."""
        return self.error is None


def _run_one(operation: Callable[[T], R], index: int, item: T) -> ParallelResult[R]:
    try:
        return ParallelResult(index=index, result=operation(item))
    except Exception as e:
        logger.debug(f"Item {index} failed: {e}")
        return ParallelResult(index=index, error=e)


def _is_sequential(count: int, parallel: bool, max_concurrency: int) -> bool:
    return not parallel or max_concurrency <= 1 or count <= 1


def execute_parallel_with_errors(
    items: Sequence[T],
    operation: Callable[[T], R],
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[ParallelResult[R]]:
    """Run ``operation`` over ``items`` and keep each item's error.

    When ``parallel`` is False, ``max_concurrency`` is 1 or less, or there is
    at most one item, the items run one after another in the calling thread.
    Otherwise at most ``max_concurrency`` operations run at once on a worker
    pool. ``operation`` must be safe to call from several threads at once.

    Args:
        items: Inputs, in the order results should be returned
        operation: Callable applied to each item
        parallel: Allow concurrent execution
        max_concurrency: Upper bound on simultaneously running operations

    Returns:
        One ParallelResult per item; ``results[i].index == i`` always
    """
    count = len(items)
    if count == 0:
        return []

    if _is_sequential(count, parallel, max_concurrency):
        return [_run_one(operation, i, item) for i, item in enumerate(items)]

    results: list[ParallelResult[R] | None] = [None] * count
    results_lock = threading.Lock()

    def worker(index: int, item: T) -> None:
        outcome = _run_one(operation, index, item)
        with results_lock:
            results[index] = outcome

    workers = min(max_concurrency, count)
    logger.debug(f"Running {count} items on {workers} workers")
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gh-helper") as pool:
        futures = [pool.submit(worker, i, item) for i, item in enumerate(items)]
        for future in futures:
            # worker() never raises for Exception subclasses; anything else propagates
            future.result()

    return [r for r in results if r is not None]


def execute_parallel(
    items: Sequence[T],
    operation: Callable[[T], R],
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[R | None]:
    """Run ``operation`` over ``items`` and return bare results in input order.

    Failed items contribute None at their position. Use
    :func:`execute_parallel_with_errors` to tell a failure apart from an
    operation that legitimately returned None.
    """
    return [
        r.result
        for r in execute_parallel_with_errors(items, operation, parallel, max_concurrency)
    ]
