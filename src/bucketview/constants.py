from pathlib import Path

APP_NAME = "Bucketview"
APP_DIR = Path.home() / ".bucketview"
DB_PATH = APP_DIR / "bucketview.db"
LOG_DIR = APP_DIR / "logs"
LOG_FILE = LOG_DIR / "bucketview.log"
KEYRING_SERVICE = "bucketview"

# Transfer defaults
DEFAULT_BUFFER_SIZE = 8 * 1024 * 1024  # 8 MiB
MIN_PART_SIZE = 5 * 1024 * 1024  # S3 multipart minimum (all parts but the last)
DELETE_BATCH_SIZE = 1000

# Listing defaults
DEFAULT_DELIMITER = "/"
DEFAULT_PAGE_LIMIT = 40

# Preview: objects larger than this must go through a streamed download
PREVIEW_SIZE_LIMIT = 2 * 1024 * 1024  # 2 MB
HEAD_SNIFF_BYTES = 256

# Presigning
DEFAULT_PRESIGN_TTL = 3600
MAX_PRESIGN_TTL = 7 * 24 * 3600  # SigV4 upper bound

# Connection defaults
DEFAULT_REGION = "us-east-1"
DEFAULT_TIMEOUT = 60.0
# Azure server-side copies run asynchronously and are polled until done
COPY_POLL_INTERVAL = 0.5
COPY_TIMEOUT = 600.0
# Endpoints on these domains only accept virtual-host style addressing
VIRTUAL_HOST_DOMAINS = ("aliyuncs.com",)

# UI loop
NAV_HISTORY_MAX = 50
PUMP_INTERVAL_MS = 16
SHUTDOWN_GRACE_SECONDS = 5.0

# Logging
MAX_LOG_SIZE = 5 * 1024 * 1024  # 5 MB per file
LOG_BACKUP_COUNT = 3
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "azure")

# Activity log: oldest rows beyond this count are pruned on insert
ACTIVITY_LOG_MAX_ROWS = 1000
