"""Tests for persisted user settings."""

from pathlib import Path

import pytest

from bucketview.constants import DEFAULT_PAGE_LIMIT
from bucketview.core.settings import Settings
from bucketview.db.database import Database, set_pref


@pytest.fixture
def db(tmp_path: Path) -> Database:
    d = Database(tmp_path / "settings.db")
    yield d
    d.close()


class TestSettings:
    def test_defaults(self, db: Database):
        s = Settings.load(db)
        assert s.page_limit == DEFAULT_PAGE_LIMIT
        assert s.show_type == "list"
        assert s.auto_login is True

    def test_round_trip(self, db: Database):
        Settings(page_limit=100, show_type="grid", auto_login=False).store(db)
        s = Settings.load(db)
        assert s == Settings(page_limit=100, show_type="grid", auto_login=False)

    def test_invalid_values_fall_back(self, db: Database):
        set_pref(db, "page_limit", "-3")
        set_pref(db, "show_type", "carousel")
        s = Settings.load(db)
        assert s.page_limit == DEFAULT_PAGE_LIMIT
        assert s.show_type == "list"
