from __future__ import annotations

import logging
from queue import Queue
from threading import Thread
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Work = Callable[[], None]


class SerialExecutor:
    """Runs scheduled work one item at a time on a single worker thread.

    Everything that touches shared device state (tool bodies, alarm
    banners) goes through here, so those pieces never run concurrently.
    """

    def __init__(self, name: str = "device-main"):
        self.name = name
        self._queue: "Queue[Optional[Work]]" = Queue()
        self._thread: Optional[Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def shutdown(self, timeout: float = 2.0) -> None:
        if not self._thread:
            return
        self._queue.put(None)
        self._thread.join(timeout=timeout)
        self._thread = None

    def schedule(self, work: Work) -> None:
        self._queue.put(work)

    def wait_idle(self) -> None:
        """Blocks until every item scheduled so far has run."""
        self._queue.join()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while True:
            work = self._queue.get()
            try:
                if work is None:
                    return
                work()
            except Exception:
                logger.error("Scheduled work failed", exc_info=True)
            finally:
                self._queue.task_done()
