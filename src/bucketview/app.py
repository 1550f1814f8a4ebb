"""Startup wiring: directories, logging, database, settings and the last session."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bucketview import constants
from bucketview.core.browser import BrowserState
from bucketview.core.client import Client
from bucketview.core.errors import StorageError
from bucketview.core.runtime import TaskSpawner
from bucketview.core.sessions import KeyringError, Session, SessionStore
from bucketview.core.settings import Settings
from bucketview.db.database import Database
from bucketview.logging_setup import setup_logging

logger = logging.getLogger("bucketview.app")


@dataclass
class AppContext:
    db: Database
    settings: Settings
    sessions: SessionStore
    spawner: TaskSpawner
    state: BrowserState | None = None
    session: Session | None = None

    def connect(self, session: Session) -> BrowserState:
        """Open *session*, remember it as latest and start listing its root.

        Raises ConfigError for unusable connection parameters.
        """
        client = Client(session.to_config())
        if self.state is not None:
            self.state.close()
        self.state = BrowserState(
            client, self.spawner, page_size=self.settings.page_limit, db=self.db
        )
        try:
            self.sessions.save_session(session)
        except KeyringError:
            logger.warning("Session '%s' not remembered: keyring unavailable", session.name)
        self.session = session
        self.state.refresh()
        self.state.fetch_bucket_info()
        logger.info("Connected session '%s' bucket='%s'", session.name, session.bucket)
        return self.state

    def shutdown(self) -> None:
        if self.state is not None:
            self.state.shutdown()
        else:
            self.spawner.shutdown()
        self.db.close()
        logger.info("Shut down")


def bootstrap(log_level: str | None = None) -> AppContext:
    """Prepare everything a UI needs; auto-connects to the latest session when enabled.

    A QCoreApplication (or QApplication) should exist before the update
    pump is started.
    """
    constants.APP_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(log_level)
    logger.info("Starting %s", constants.APP_NAME)

    db = Database()
    settings = Settings.load(db)
    ctx = AppContext(db=db, settings=settings, sessions=SessionStore(), spawner=TaskSpawner())

    if settings.auto_login:
        latest = ctx.sessions.load_latest()
        if latest is not None:
            try:
                ctx.connect(latest)
            except StorageError as e:
                logger.warning("Could not restore session '%s': %s", latest.name, e.detail)
    return ctx
