"""SQLite store for preferences and the activity log."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from bucketview import constants

logger = logging.getLogger("bucketview.db")

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class Database:
    """One SQLite file shared by the UI thread and pool tasks.

    Each thread opens its own connection on first use. Writes go through
    ``transaction()``, which serializes them on a lock and commits or rolls
    back as a unit. The schema version lives in ``PRAGMA user_version``.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        max_activity_rows: int = constants.ACTIVITY_LOG_MAX_ROWS,
    ) -> None:
        self._db_path = str(db_path or constants.DB_PATH)
        self.max_activity_rows = max_activity_rows
        self._local = threading.local()
        self._write_lock = threading.Lock()

        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn().execute("PRAGMA journal_mode=WAL")
        self._migrate()
        logger.info("Database opened at %s (schema v%d)", self._db_path, self.schema_version())

    @property
    def path(self) -> str:
        return self._db_path

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self._db_path, timeout=10.0)
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._conn()
        with self._write_lock, conn:
            yield conn

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        return self._conn().execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self._conn().execute(sql, params).fetchall()

    def schema_version(self) -> int:
        return self._conn().execute("PRAGMA user_version").fetchone()[0]

    def _migrate(self) -> None:
        """Run each ``migrations/NNN_*.sql`` newer than ``user_version`` in its own transaction."""
        current = self.schema_version()
        for migration in sorted(MIGRATIONS_DIR.glob("*.sql")):
            version = int(migration.stem.split("_", 1)[0])
            if version <= current:
                continue
            logger.info("Migrating schema v%d -> v%d (%s)", current, version, migration.name)
            script = f"BEGIN;\n{migration.read_text()}\nPRAGMA user_version = {version};\nCOMMIT;"
            with self._write_lock:
                self._conn().executescript(script)
            current = version

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


# Preferences


def get_pref(db: Database, key: str, default: str | None = None) -> str | None:
    row = db.fetchone("SELECT value FROM preferences WHERE key = ?", (key,))
    return row["value"] if row else default


def set_pref(db: Database, key: str, value: str) -> None:
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO preferences (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )


def get_bool_pref(db: Database, key: str, default: bool = False) -> bool:
    val = get_pref(db, key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def get_int_pref(db: Database, key: str, default: int = 0) -> int:
    val = get_pref(db, key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


# Activity log


def add_activity(db: Database, kind: str, state: str, message: str) -> None:
    """Append an entry and prune everything older than the newest ``max_activity_rows``."""
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO activity_log (kind, state, message) VALUES (?, ?, ?)",
            (kind, state, message),
        )
        pruned = conn.execute(
            "DELETE FROM activity_log WHERE id <= "
            "(SELECT id FROM activity_log ORDER BY id DESC LIMIT 1 OFFSET ?)",
            (db.max_activity_rows,),
        ).rowcount
    if pruned:
        logger.debug("Pruned %d activity rows", pruned)


def recent_activity(db: Database, limit: int = 100) -> list[sqlite3.Row]:
    """Newest first."""
    return db.fetchall(
        "SELECT kind, state, message, created_at FROM activity_log ORDER BY id DESC LIMIT ?",
        (limit,),
    )
