"""Channels and the closed event vocabulary delivered to the UI thread.

Background tasks are the producers; the UI thread is the single consumer and
drains whatever is queued once per tick without ever waiting. Transfer
progress travels on its own ``ProgressChannel`` so that high-frequency
updates never crowd operation results out of the main ``EventBus``.

Events of one operation arrive in the order its task sent them; there is no
ordering between different operations.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from bucketview.core.errors import StorageError
from bucketview.core.transfers import TransferDirection, TransferProgress
from bucketview.models.objects import BucketInfo, ListingPage, Metadata

logger = logging.getLogger("bucketview.events")

T = TypeVar("T")


class Channel(Generic[T]):
    """Unbounded multi-producer, single-consumer queue.

    Sending after ``close()`` is tolerated: the item is dropped and ``send``
    returns False, so an abandoned consumer never breaks a producer.
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._queue: queue.SimpleQueue[T] = queue.SimpleQueue()
        self._closed = False

    def send(self, item: T) -> bool:
        if self._closed:
            logger.debug("Dropping %s sent to closed %s", type(item).__name__, self.name)
            return False
        self._queue.put(item)
        return True

    def drain(self) -> list[T]:
        """Everything queued right now, oldest first. Never blocks."""
        items: list[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self._queue.qsize()


# --- Event vocabulary ---


@dataclass(frozen=True)
class Event:
    error: StorageError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ListingReady(Event):
    generation: int = 0
    page: ListingPage | None = None


@dataclass(frozen=True)
class Deleted(Event):
    keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class FolderCreated(Event):
    key: str = ""


@dataclass(frozen=True)
class MetadataReady(Event):
    metadata: Metadata | None = None


@dataclass(frozen=True)
class ObjectReady(Event):
    key: str = ""
    data: bytes = b""


@dataclass(frozen=True)
class BucketInfoReady(Event):
    info: BucketInfo | None = None


@dataclass(frozen=True)
class CopyDone(Event):
    src_key: str = ""
    dest_key: str = ""
    is_move: bool = False


@dataclass(frozen=True)
class PresignReady(Event):
    key: str = ""
    url: str = ""


@dataclass(frozen=True)
class Uploaded(Event):
    """One entry per local path of a multi-file upload."""

    results: tuple[tuple[str, StorageError | None], ...] = ()


@dataclass(frozen=True)
class TransferDone(Event):
    direction: TransferDirection = TransferDirection.UPLOAD
    key: str = ""


class NavAction(Enum):
    BACK = "back"
    FORWARD = "forward"
    GO_TO = "go_to"


@dataclass(frozen=True)
class NavigationRequested(Event):
    action: NavAction = NavAction.GO_TO
    path: str = ""


class EventBus(Channel[Event]):
    def __init__(self) -> None:
        super().__init__("event-bus")


class ProgressChannel(Channel[TransferProgress]):
    def __init__(self) -> None:
        super().__init__("progress")
