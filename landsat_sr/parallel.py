"""
Fixed-size worker pool for the data-parallel stages.

Work units of a stage are independent and write disjoint elements of the
output arrays. The first failing unit aborts the stage: pending units are
cancelled and the exception is re-raised to the caller.
"""

import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Iterable, List, Optional, TypeVar

from tqdm import tqdm

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def default_workers() -> int:
    """Number of workers used when none is requested."""
    return os.cpu_count() or 1


def run_parallel(
    func: Callable[[T], R],
    items: Iterable[T],
    max_workers: Optional[int] = None,
    progress: bool = False,
    desc: Optional[str] = None,
) -> List[R]:
    """
    Apply ``func`` to every item on a thread pool.

    Parameters
    ----------
    func : callable
        Work unit.
    items : iterable
        Work unit arguments.
    max_workers : int, optional
        Pool size. Default is the number of CPUs. 1 runs serially in the
        calling thread.
    progress : bool, optional
        Show a tqdm progress bar.
    desc : str, optional
        Progress bar label.

    Returns
    -------
    list
        Results in the order of ``items``.

    Raises
    ------
    Exception
        The exception of the first failing unit; remaining units are
        cancelled.
    """
    items = list(items)
    if max_workers is None:
        max_workers = default_workers()
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")

    bar = tqdm(total=len(items), desc=desc, disable=not progress)
    try:
        if max_workers == 1 or len(items) <= 1:
            results = []
            for item in items:
                results.append(func(item))
                bar.update(1)
            return results

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(func, item) for item in items]
            for future in futures:
                future.add_done_callback(lambda _: bar.update(1))
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in futures
                      if f in done and f.exception() is not None]
            if failed:
                for future in pending:
                    future.cancel()
                logger.error("Aborting %s after a failed work unit",
                             desc or "parallel stage")
                raise failed[0].exception()
            return [f.result() for f in futures]
    finally:
        bar.close()
