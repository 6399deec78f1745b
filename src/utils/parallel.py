"""Bounded, order-preserving parallel map.

Workers pull the next index from a shared cursor and write their result into
a pre-sized slot, so results come back in input order and no more than
``concurrency`` calls are ever in flight.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 10


def parallel_map(
    items: Sequence[T],
    fn: Callable[[T], R],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """Apply ``fn`` to every item using a bounded pool of threads.

    Args:
        items: Work items, one call of ``fn`` each
        fn: Function to apply
        concurrency: Maximum number of worker threads

    Returns:
        Results in the same order as ``items``

    Raises:
        Exception: The exception of the earliest failing item, re-raised
            after all workers finished
    """
    total = len(items)
    if total == 0:
        return []

    lock = threading.Lock()
    cursor = -1
    results: list[R | None] = [None] * total
    errors: list[tuple[int, Exception]] = []

    def _next_index() -> int:
        nonlocal cursor
        with lock:
            cursor += 1
            return cursor

    def _worker() -> None:
        while True:
            index = _next_index()
            if index >= total:
                return
            try:
                results[index] = fn(items[index])
            except Exception as e:
                with lock:
                    errors.append((index, e))

    threads = [
        threading.Thread(target=_worker, daemon=True)
        for _ in range(min(total, max(concurrency, 1)))
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    if errors:
        raise min(errors, key=lambda failure: failure[0])[1]
    return results  # type: ignore[return-value]
