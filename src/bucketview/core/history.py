"""Back/forward folder navigation."""

from __future__ import annotations

from bucketview.constants import NAV_HISTORY_MAX


class NavigationHistory:
    """Two stacks around the current path, each capped at ``max_depth``."""

    def __init__(self, current: str = "", max_depth: int = NAV_HISTORY_MAX) -> None:
        self.current = current
        self.max_depth = max_depth
        self._back: list[str] = []
        self._forward: list[str] = []

    @property
    def can_go_back(self) -> bool:
        return bool(self._back)

    @property
    def can_go_forward(self) -> bool:
        return bool(self._forward)

    def go_to(self, path: str) -> bool:
        """Visit *path*. Returns False when it is already current."""
        if path == self.current:
            return False
        self._back.append(self.current)
        if len(self._back) > self.max_depth:
            self._back = self._back[-self.max_depth :]
        self._forward.clear()
        self.current = path
        return True

    def back(self) -> str | None:
        if not self._back:
            return None
        self._forward.append(self.current)
        self.current = self._back.pop()
        return self.current

    def forward(self) -> str | None:
        if not self._forward:
            return None
        self._back.append(self.current)
        self.current = self._forward.pop()
        return self.current

    def reset(self, current: str = "") -> None:
        self.current = current
        self._back.clear()
        self._forward.clear()
