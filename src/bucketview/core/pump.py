"""Frame tick that drains background results into the UI thread."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from bucketview.constants import PUMP_INTERVAL_MS

if TYPE_CHECKING:
    from bucketview.core.browser import BrowserState

logger = logging.getLogger("bucketview.pump")


class UpdatePump(QObject):
    """Calls ``BrowserState.poll()`` once per timer tick on the owning thread.

    ``updated`` fires after any tick that applied at least one event, so a
    view only repaints when something changed.
    """

    updated = pyqtSignal(int)  # events applied this tick

    def __init__(
        self, state: BrowserState, interval_ms: int = PUMP_INTERVAL_MS, parent: QObject | None = None
    ) -> None:
        super().__init__(parent)
        self._state = state
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.tick)

    def start(self) -> None:
        self._timer.start()
        logger.debug("Update pump started (%d ms)", self._timer.interval())

    def stop(self) -> None:
        self._timer.stop()

    @property
    def running(self) -> bool:
        return self._timer.isActive()

    def tick(self) -> int:
        count = self._state.poll()
        if count:
            self.updated.emit(count)
        return count
