"""Background task pool, constructed once and passed to whoever dispatches work."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from PyQt6.QtCore import QRunnable, QThreadPool

from bucketview.constants import SHUTDOWN_GRACE_SECONDS

logger = logging.getLogger("bucketview.runtime")

DoneCallback = Callable[[Any, BaseException | None], None]


class _Task(QRunnable):
    """Runs *fn* and always reports back through *on_done*."""

    def __init__(self, fn: Callable[[], Any], on_done: DoneCallback | None, name: str) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self._fn = fn
        self._on_done = on_done
        self._name = name

    def run(self) -> None:
        result = None
        error: BaseException | None = None
        try:
            result = self._fn()
        except Exception as e:
            logger.error("Task %s failed: %s", self._name, e)
            error = e
        if self._on_done is None:
            return
        try:
            self._on_done(result, error)
        except Exception:
            logger.exception("Completion callback for task %s raised", self._name)


class TaskSpawner:
    """Wraps a QThreadPool. There is no concurrency cap beyond the pool's threads."""

    def __init__(self, max_threads: int | None = None) -> None:
        self._pool = QThreadPool()
        if max_threads is not None:
            self._pool.setMaxThreadCount(max_threads)
        self._closed = False

    def spawn(
        self, fn: Callable[[], Any], on_done: DoneCallback | None = None, name: str = ""
    ) -> bool:
        """Queue *fn*. Returns False once the spawner has been shut down."""
        if self._closed:
            logger.warning("Spawn after shutdown ignored: %s", name or fn)
            return False
        self._pool.start(_Task(fn, on_done, name or getattr(fn, "__name__", "task")))
        return True

    @property
    def active(self) -> int:
        return self._pool.activeThreadCount()

    def wait(self, msecs: int = -1) -> bool:
        """Block until every task finished or *msecs* elapsed."""
        return self._pool.waitForDone(msecs)

    def shutdown(self, grace: float = SHUTDOWN_GRACE_SECONDS) -> bool:
        """Drop queued tasks and wait up to *grace* seconds for running ones."""
        self._closed = True
        self._pool.clear()
        done = self._pool.waitForDone(int(grace * 1000))
        if not done:
            logger.warning("%d task(s) still running after %.1fs grace", self.active, grace)
        logger.info("Task pool shut down")
        return done
