"""Transfer engine: bounded-memory streaming copy with per-chunk progress.

Each transfer allocates one reusable buffer. Every loop iteration fills the
buffer completely (or up to end of stream), writes it out and emits exactly
one ``TransferProgress``, so an N-byte transfer with buffer size B produces
``ceil(N / B)`` events and a zero-byte transfer produces none. Completion is
reported separately by the caller. Nothing here retries.
"""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from bucketview.constants import DEFAULT_BUFFER_SIZE
from bucketview.core.errors import StorageError, TransferIoError, translate_error

if TYPE_CHECKING:
    from bucketview.core.events import Channel
    from bucketview.core.operators import Operator

logger = logging.getLogger("bucketview.transfers")


class TransferDirection(Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferProgress:
    direction: TransferDirection
    key: str
    total_bytes: int
    transferred_bytes: int


ProgressSink = Callable[[TransferProgress], object]


def _discard(_progress: TransferProgress) -> None:
    return None


@dataclass
class TransferJob:
    key: str
    direction: TransferDirection
    total_bytes: int = 0
    transferred_bytes: int = 0
    status: TransferStatus = TransferStatus.RUNNING
    error: StorageError | None = None

    @property
    def rate(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.transferred_bytes / self.total_bytes

    @property
    def finished(self) -> bool:
        return self.status is not TransferStatus.RUNNING


def partial_path(dest: Path) -> Path:
    """Sibling file a download is written to before the final rename."""
    return dest.with_name(f"._{dest.name}.part")


def _fill(read_into: Callable[[memoryview], int | None], view: memoryview) -> int:
    filled = 0
    size = len(view)
    while filled < size:
        n = read_into(view[filled:])
        if not n:
            break
        filled += n
    return filled


def stream_copy(
    read_into: Callable[[memoryview], int | None],
    write: Callable[[memoryview], object],
    *,
    direction: TransferDirection,
    key: str,
    total_bytes: int,
    progress: ProgressSink = _discard,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """Copy until the source is exhausted. Returns the number of bytes moved."""
    if buffer_size <= 0:
        raise ValueError("buffer_size must be positive")
    buf = bytearray(buffer_size)
    view = memoryview(buf)
    transferred = 0
    while True:
        n = _fill(read_into, view)
        if n == 0:
            break
        write(view[:n])
        transferred += n
        progress(TransferProgress(direction, key, total_bytes, transferred))
        if n < buffer_size:
            break
    return transferred


def upload_file(
    operator: Operator,
    local_path: str | Path,
    key: str,
    progress: ProgressSink = _discard,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """Stream *local_path* to *key*. A failed upload aborts the remote writer."""
    path = Path(local_path)
    try:
        total = path.stat().st_size
        source = open(path, "rb")
    except OSError as e:
        raise TransferIoError(f"Cannot read '{path.name}': {e.strerror or e}", str(e)) from e

    logger.info("Upload started key='%s' size=%d", key, total)
    content_type = mimetypes.guess_type(path.name)[0]
    try:
        writer = operator.open_writer(key, content_type=content_type)
    except Exception as e:
        source.close()
        raise translate_error(e) from e

    try:
        with source:
            moved = stream_copy(
                source.readinto,
                writer.write,
                direction=TransferDirection.UPLOAD,
                key=key,
                total_bytes=total,
                progress=progress,
                buffer_size=buffer_size,
            )
        writer.close()
    except Exception as e:
        writer.abort()
        logger.error("Upload failed key='%s': %s", key, e)
        raise translate_error(e) from e

    logger.info("Upload finished key='%s' bytes=%d", key, moved)
    return moved


def download_file(
    operator: Operator,
    key: str,
    local_path: str | Path,
    progress: ProgressSink = _discard,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    total_bytes: int | None = None,
) -> int:
    """Stream *key* into *local_path*.

    Bytes land in a ``._<name>.part`` sibling that replaces the destination
    only on success; on failure it is closed and left behind.
    """
    dest = Path(local_path)
    try:
        total = operator.stat(key).size if total_bytes is None else total_bytes
        reader = operator.open_reader(key)
    except Exception as e:
        raise translate_error(e) from e

    part = partial_path(dest)
    logger.info("Download started key='%s' size=%d dest='%s'", key, total, dest)
    try:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            sink = open(part, "wb")
        except OSError as e:
            raise TransferIoError(
                f"Cannot write to '{dest.parent}': {e.strerror or e}", str(e)
            ) from e
        with sink:
            moved = stream_copy(
                reader.readinto,
                sink.write,
                direction=TransferDirection.DOWNLOAD,
                key=key,
                total_bytes=total,
                progress=progress,
                buffer_size=buffer_size,
            )
        part.replace(dest)
    except Exception as e:
        logger.error("Download failed key='%s': %s", key, e)
        raise translate_error(e) from e
    finally:
        reader.close()

    logger.info("Download finished key='%s' bytes=%d", key, moved)
    return moved


class TransferManager:
    """Registry of transfer jobs keyed by object key, one map per direction.

    Owned by the UI thread; background tasks only feed it through the
    progress channel. Jobs stay listed until explicitly dismissed.
    """

    def __init__(self) -> None:
        self._jobs: dict[TransferDirection, dict[str, TransferJob]] = {
            TransferDirection.UPLOAD: {},
            TransferDirection.DOWNLOAD: {},
        }

    def register(self, direction: TransferDirection, key: str, total_bytes: int = 0) -> TransferJob:
        job = TransferJob(key=key, direction=direction, total_bytes=total_bytes)
        self._jobs[direction][key] = job
        return job

    def get(self, direction: TransferDirection, key: str) -> TransferJob | None:
        return self._jobs[direction].get(key)

    def apply(self, progress: TransferProgress) -> TransferJob | None:
        """Record *progress* on its registered job; never changes the job's status.

        Progress for a job that is not registered (never started here, or
        already dismissed) is dropped.
        """
        job = self._jobs[progress.direction].get(progress.key)
        if job is None:
            logger.debug("Dropping progress for unregistered transfer key='%s'", progress.key)
            return None
        job.total_bytes = progress.total_bytes
        # Never moves backwards
        job.transferred_bytes = max(job.transferred_bytes, progress.transferred_bytes)
        return job

    def finish(
        self, direction: TransferDirection, key: str, error: StorageError | None = None
    ) -> TransferJob | None:
        job = self._jobs[direction].get(key)
        if job is None:
            return None
        if error is None:
            job.status = TransferStatus.COMPLETED
        else:
            job.status = TransferStatus.FAILED
            job.error = error
        return job

    def poll(self, channel: Channel[TransferProgress]) -> int:
        """Apply every progress event currently queued. Returns the count."""
        count = 0
        for progress in channel.drain():
            self.apply(progress)
            count += 1
        return count

    def dismiss(self, direction: TransferDirection, key: str) -> bool:
        return self._jobs[direction].pop(key, None) is not None

    def dismiss_finished(self, direction: TransferDirection | None = None) -> int:
        directions = [direction] if direction is not None else list(self._jobs)
        removed = 0
        for d in directions:
            done = [k for k, job in self._jobs[d].items() if job.finished]
            for k in done:
                del self._jobs[d][k]
            removed += len(done)
        return removed

    def jobs(self, direction: TransferDirection) -> list[TransferJob]:
        return list(self._jobs[direction].values())

    @property
    def total(self) -> int:
        return sum(len(jobs) for jobs in self._jobs.values())
