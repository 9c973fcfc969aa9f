from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T, int], R],
) -> List[R]:
    """Run ``fn(item, index)`` over ``items`` with at most ``limit`` threads.

    Workers pull the next index from a shared cursor, so every item is
    processed exactly once. Results keep input order. The first exception
    raised by a worker is re-raised after all workers stop.
    """
    n = len(items)
    if n == 0:
        return []
    workers = max(1, min(int(limit), n))
    results: List[Optional[R]] = [None] * n
    cursor = [0]
    lock = threading.Lock()
    errors: List[BaseException] = []

    def _worker() -> None:
        while True:
            with lock:
                if errors or cursor[0] >= n:
                    return
                idx = cursor[0]
                cursor[0] += 1
            try:
                results[idx] = fn(items[idx], idx)
            except BaseException as e:
                with lock:
                    errors.append(e)
                return

    if workers == 1:
        _worker()
    else:
        threads = [threading.Thread(target=_worker, daemon=True) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    if errors:
        raise errors[0]
    return results  # type: ignore[return-value]
