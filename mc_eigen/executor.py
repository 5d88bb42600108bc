"""
History Executors: serial and multiprocessing
=============================================

Parallelization strategy:
- A generation's source is cut into fixed-size tasks
- Tasks are dispatched to ``n_workers`` processes (or run inline)
- Results come back in task order and are merged at the generation
  barrier by the eigenvalue solver

Geometry and cross-sections are shipped to each worker once, through
the pool initializer, and stay read-only for the whole run.
"""

from multiprocessing import Pool
from typing import List, Optional, Sequence

from .transport import HistoryTask, TaskResult, TransportContext, run_task

_worker_context: Optional[TransportContext] = None


def _init_worker(context: TransportContext) -> None:
    global _worker_context
    _worker_context = context


def _run_in_worker(task: HistoryTask) -> TaskResult:
    return run_task(_worker_context, task)


class SerialExecutor:
    """Run every task in the calling process."""

    n_workers = 1

    def __init__(self, context: TransportContext):
        self.context = context

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def map(self, tasks: Sequence[HistoryTask]) -> List[TaskResult]:
        return [run_task(self.context, task) for task in tasks]

    def close(self) -> None:
        pass

    def get_name(self) -> str:
        return "serial (1 process)"


class PoolExecutor(SerialExecutor):
    """Run tasks on a ``multiprocessing.Pool`` kept alive for the whole run.

    Parameters
    ----------
    context : TransportContext
        Read-only run data, installed in every worker at start-up.
    n_workers : int
        Number of worker processes.
    """

    def __init__(self, context: TransportContext, n_workers: int):
        super().__init__(context)
        self.n_workers = n_workers
        self._pool = Pool(processes=n_workers, initializer=_init_worker,
                          initargs=(context,))

    def map(self, tasks):
        # Pool.map preserves task order
        return self._pool.map(_run_in_worker, tasks, chunksize=1)

    def __exit__(self, exc_type, *exc):
        if exc_type is not None and self._pool is not None:
            self._pool.terminate()
        self.close()
        return False

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool.join()
            self._pool = None

    def get_name(self) -> str:
        return f"multiprocessing ({self.n_workers} processes)"


def make_executor(context: TransportContext, n_workers: int) -> SerialExecutor:
    if n_workers <= 1:
        return SerialExecutor(context)
    return PoolExecutor(context, n_workers)
