from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional
import os


def chunk_bounds(n: int, n_chunks: int) -> List[int]:
    """Boundaries splitting ``range(n)`` into ``n_chunks`` contiguous, near-equal parts."""
    n_chunks = max(1, int(n_chunks))
    return [(i * n) // n_chunks for i in range(n_chunks + 1)]


def run_chunked(
    func: Callable[[int, int], None],
    n: int,
    *,
    max_workers: Optional[int] = None,
    min_chunk_size: int = 1 << 20,
) -> None:
    """Call ``func(start, stop)`` over disjoint chunks covering ``range(n)``.

    Chunks never overlap, so ``func`` may write into a shared output array.
    Each element must be computable independently of all others; the result is
    then identical for any worker count. Arrays with fewer than two chunks of
    ``min_chunk_size`` elements run on the calling thread.

    numpy releases the GIL inside its elementwise loops, so threads give real
    parallelism here. Exceptions raised by ``func`` propagate.
    """
    if n <= 0:
        return
    workers = max_workers if max_workers is not None else (os.cpu_count() or 1)
    workers = max(1, int(workers))
    n_chunks = min(workers, -(-n // max(1, int(min_chunk_size))))
    if n_chunks <= 1:
        func(0, n)
        return

    bounds = chunk_bounds(n, n_chunks)
    with ThreadPoolExecutor(max_workers=n_chunks) as pool:
        futures = [pool.submit(func, a, b) for a, b in zip(bounds[:-1], bounds[1:])]
        for fut in futures:
            fut.result()
