import logging
import os
from logging.handlers import RotatingFileHandler

from bucketview import constants


def setup_logging(level: str | None = None) -> None:
    """Configure rotating file logger for bucketview.

    ``BUCKETVIEW_LOG_LEVEL`` (or *level*) sets the package level. SDK loggers
    stay at WARNING unless DEBUG is requested, since botocore and azure-core
    log every request at INFO/DEBUG.
    """
    requested = level or os.environ.get("BUCKETVIEW_LOG_LEVEL")
    level_name = (requested or "DEBUG").upper()
    pkg_level = logging.getLevelName(level_name)
    if not isinstance(pkg_level, int):
        pkg_level = logging.DEBUG

    constants.LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        constants.LOG_FILE,
        maxBytes=constants.MAX_LOG_SIZE,
        backupCount=constants.LOG_BACKUP_COUNT,
    )
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s [%(name)s] %(message)s")
    )
    root = logging.getLogger("bucketview")
    root.setLevel(pkg_level)
    root.addHandler(handler)

    sdk_level = logging.DEBUG if requested and level_name == "DEBUG" else logging.WARNING
    for name in constants.QUIET_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)
