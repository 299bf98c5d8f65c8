"""Join-all task groups for background work.

A ``TaskGroup`` runs every task it is given to completion on worker threads.
A failing task never cancels its siblings; ``wait`` blocks until all tasks have
finished and then re-raises the first error that occurred.
"""

import threading
from collections.abc import Callable
from concurrent import futures
from concurrent.futures import Future, ThreadPoolExecutor

from node_manager.logging_config import get_logger

logger = get_logger(__name__)


class TaskGroup:
    """Run-to-completion group of tasks reporting the first error."""

    def __init__(self, name: str = "tasks", max_workers: int | None = None):
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._futures: list[Future] = []
        self._lock = threading.Lock()
        self._first_error: BaseException | None = None

    def go(self, fn: Callable, *args, **kwargs) -> Future:
        """Launch ``fn(*args, **kwargs)`` in the background."""

        def _run():
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                with self._lock:
                    if self._first_error is None:
                        self._first_error = e
                logger.debug(f"[{self.name}] task failed: {e}")
                raise

        future = self._executor.submit(_run)
        self._futures.append(future)
        return future

    def wait(self) -> None:
        """Block until every task has finished.

        Raises:
            Exception: The first error raised by any task
        """
        futures.wait(self._futures)
        self._executor.shutdown(wait=True)
        if self._first_error is not None:
            raise self._first_error

    def __len__(self) -> int:
        return len(self._futures)
