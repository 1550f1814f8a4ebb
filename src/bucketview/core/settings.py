"""User settings persisted in the preferences table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bucketview.constants import DEFAULT_PAGE_LIMIT
from bucketview.db.database import get_bool_pref, get_int_pref, get_pref, set_pref

if TYPE_CHECKING:
    from bucketview.db.database import Database

logger = logging.getLogger("bucketview.settings")

SHOW_TYPES = ("list", "grid")


@dataclass
class Settings:
    page_limit: int = DEFAULT_PAGE_LIMIT
    show_type: str = "list"
    auto_login: bool = True

    @classmethod
    def load(cls, db: Database) -> Settings:
        page_limit = get_int_pref(db, "page_limit", DEFAULT_PAGE_LIMIT)
        if page_limit <= 0:
            page_limit = DEFAULT_PAGE_LIMIT
        show_type = get_pref(db, "show_type", "list")
        if show_type not in SHOW_TYPES:
            show_type = "list"
        return cls(
            page_limit=page_limit,
            show_type=show_type,
            auto_login=get_bool_pref(db, "auto_login", True),
        )

    def store(self, db: Database) -> None:
        set_pref(db, "page_limit", str(self.page_limit))
        set_pref(db, "show_type", self.show_type)
        set_pref(db, "auto_login", "true" if self.auto_login else "false")
        logger.debug("Settings saved: %s", self)
