"""UI-thread state of one connected bucket.

``BrowserState`` is the only owner of the accumulated listing, the
navigation history and the transfer registry. Every network or file
operation is dispatched onto the task pool and returns immediately; its
result comes back as an event that ``poll()`` applies on the UI thread.
Background tasks never touch this object directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from bucketview.constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_PRESIGN_TTL,
    PREVIEW_SIZE_LIMIT,
)
from bucketview.core.client import upload_key
from bucketview.core.errors import MoveIncompleteError, StorageError, translate_error
from bucketview.core.events import (
    BucketInfoReady,
    CopyDone,
    Deleted,
    Event,
    EventBus,
    FolderCreated,
    ListingReady,
    MetadataReady,
    NavAction,
    NavigationRequested,
    ObjectReady,
    PresignReady,
    ProgressChannel,
    TransferDone,
    Uploaded,
)
from bucketview.core.history import NavigationHistory
from bucketview.core.listing import ListingView, ListOptions
from bucketview.core.transfers import TransferDirection, TransferManager
from bucketview.db.database import add_activity

if TYPE_CHECKING:
    from bucketview.core.client import Client
    from bucketview.core.runtime import TaskSpawner
    from bucketview.db.database import Database
    from bucketview.models.objects import BucketInfo, Metadata

logger = logging.getLogger("bucketview.browser")


@dataclass
class ActivityEntry:
    kind: str
    state: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class BrowserState:
    def __init__(
        self,
        client: Client,
        spawner: TaskSpawner,
        *,
        page_size: int = DEFAULT_PAGE_LIMIT,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        db: Database | None = None,
    ) -> None:
        self.client = client
        self.spawner = spawner
        self.db = db
        self.buffer_size = buffer_size
        self.bus = EventBus()
        self.progress = ProgressChannel()

        self.listing = ListingView(page_size)
        self.history = NavigationHistory()
        self.transfers = TransferManager()

        # One-shot toast; never blocks navigation
        self.error: StorageError | None = None
        self.logs: list[ActivityEntry] = []
        self.bucket_info: BucketInfo | None = None
        self.metadata: Metadata | None = None
        self.preview: tuple[str, bytes] | None = None
        self.last_url: str | None = None

        self._handlers: dict[type[Event], Callable[[Any], None]] = {
            ListingReady: self._on_listing,
            Deleted: self._on_deleted,
            FolderCreated: self._on_folder_created,
            MetadataReady: self._on_metadata,
            ObjectReady: self._on_object,
            BucketInfoReady: self._on_bucket_info,
            CopyDone: self._on_copy,
            PresignReady: self._on_presign,
            NavigationRequested: self._on_navigation,
            Uploaded: self._on_uploaded,
            TransferDone: self._on_transfer_done,
        }

    @property
    def current_path(self) -> str:
        return self.history.current

    # --- Dispatch ---

    def _dispatch(
        self,
        name: str,
        fn: Callable[[], Any],
        to_event: Callable[[Any, StorageError | None], Event],
    ) -> bool:
        bus = self.bus

        def on_done(result: Any, error: BaseException | None) -> None:
            if error is not None:
                bus.send(to_event(None, translate_error(error)))
            else:
                bus.send(to_event(result, None))

        logger.debug("Dispatching %s", name)
        return self.spawner.spawn(fn, on_done, name)

    def _request_page(self, query: ListOptions) -> None:
        generation = self.listing.generation
        client = self.client
        self._dispatch(
            "list",
            lambda: client.list(query),
            lambda page, err: ListingReady(error=err, generation=generation, page=page),
        )

    # --- Listing ---

    def refresh(self) -> None:
        """Restart the listing of the current folder from its first page."""
        self._request_page(self.listing.refresh(current_path=self.current_path))

    def load_more(self) -> bool:
        """Request the next page. False when loading or already complete."""
        query = self.listing.load_more()
        if query is None:
            return False
        self._request_page(query)
        return True

    def set_filter(self, text: str) -> None:
        self._request_page(self.listing.refresh(current_path=self.current_path, filter_str=text))

    def toggle_selected(self, key: str) -> None:
        for item in self.listing.items:
            if item.key == key:
                item.selected = not item.selected
                return

    # --- Navigation ---

    def go_to(self, path: str) -> None:
        self.bus.send(NavigationRequested(action=NavAction.GO_TO, path=path))

    def go_back(self) -> None:
        self.bus.send(NavigationRequested(action=NavAction.BACK))

    def go_forward(self) -> None:
        self.bus.send(NavigationRequested(action=NavAction.FORWARD))

    # --- Object operations ---

    def delete(self, keys: Iterable[str]) -> None:
        keys = tuple(keys)
        if not keys:
            return
        client = self.client
        if len(keys) == 1:
            fn = partial(client.delete, keys[0])
        else:
            fn = partial(client.delete_many, keys)
        self._dispatch("delete", fn, lambda _r, err: Deleted(error=err, keys=keys))

    def delete_selected(self) -> None:
        self.delete(item.key for item in self.listing.selected())

    def create_folder(self, name: str) -> None:
        path = self.current_path
        if path and not path.endswith("/"):
            path += "/"
        client = self.client
        self._dispatch(
            "create_folder",
            lambda: client.create_folder(path + name),
            lambda key, err: FolderCreated(error=err, key=key or path + name),
        )

    def copy(self, src_key: str, dest_key: str, is_move: bool = False) -> None:
        client = self.client
        self._dispatch(
            "copy",
            lambda: client.copy(src_key, dest_key, is_move),
            lambda _r, err: CopyDone(error=err, src_key=src_key, dest_key=dest_key, is_move=is_move),
        )

    def move(self, src_key: str, dest_key: str) -> None:
        """Copy now; the source is deleted only after CopyDone succeeds."""
        self.copy(src_key, dest_key, is_move=True)

    def _delete_moved_source(self, src_key: str, dest_key: str) -> None:
        client = self.client

        def to_event(_result: Any, err: StorageError | None) -> Event:
            if err is not None:
                err = MoveIncompleteError(src_key, dest_key, err)
            return Deleted(error=err, keys=(src_key,))

        self._dispatch("move_delete", lambda: client.delete(src_key), to_event)

    def presign(self, key: str, ttl_seconds: int = DEFAULT_PRESIGN_TTL) -> None:
        client = self.client
        self._dispatch(
            "presign",
            lambda: client.presign(key, ttl_seconds),
            lambda url, err: PresignReady(error=err, key=key, url=url or ""),
        )

    def view_object(self, key: str, size: int | None = None) -> bool:
        """Fetch a small object's bytes for preview. Refuses oversized objects."""
        if size is not None and size > PREVIEW_SIZE_LIMIT:
            self.error = StorageError(
                "File is too large to preview. Download it instead.",
                f"key={key} size={size} limit={PREVIEW_SIZE_LIMIT}",
            )
            return False
        client = self.client
        self._dispatch(
            "view_object",
            lambda: client.get(key),
            lambda data, err: ObjectReady(error=err, key=key, data=data or b""),
        )
        return True

    def fetch_metadata(self, key: str) -> None:
        client = self.client
        self._dispatch(
            "meta",
            lambda: client.meta(key),
            lambda meta, err: MetadataReady(error=err, metadata=meta),
        )

    def fetch_bucket_info(self) -> None:
        client = self.client
        self._dispatch(
            "bucket_info",
            client.bucket_info,
            lambda info, err: BucketInfoReady(error=err, info=info),
        )

    # --- Transfers ---

    def upload(self, local_path: str | Path, dest_prefix: str | None = None) -> str:
        """Upload one file into *dest_prefix* (default: current folder)."""
        prefix = self.current_path if dest_prefix is None else dest_prefix
        key = upload_key(local_path, prefix)
        self.transfers.register(TransferDirection.UPLOAD, key)
        client, sink, buffer_size = self.client, self.progress.send, self.buffer_size
        self._dispatch(
            "upload",
            lambda: client.upload(local_path, prefix, sink, buffer_size),
            lambda _r, err: TransferDone(error=err, direction=TransferDirection.UPLOAD, key=key),
        )
        return key

    def upload_many(self, paths: Iterable[str | Path], dest_prefix: str | None = None) -> list[str]:
        """Upload several files in one task; a failure does not stop the rest."""
        prefix = self.current_path if dest_prefix is None else dest_prefix
        paths = list(paths)
        keys = [upload_key(p, prefix) for p in paths]
        for key in keys:
            self.transfers.register(TransferDirection.UPLOAD, key)
        client, sink, buffer_size = self.client, self.progress.send, self.buffer_size

        def to_event(results: Any, err: StorageError | None) -> Event:
            if err is not None:
                return Uploaded(error=err, results=tuple((k, err) for k in keys))
            return Uploaded(results=tuple(results))

        self._dispatch(
            "upload_many", lambda: client.upload_many(paths, prefix, sink, buffer_size), to_event
        )
        return keys

    def download(self, key: str, local_path: str | Path) -> None:
        self.transfers.register(TransferDirection.DOWNLOAD, key)
        client, sink, buffer_size = self.client, self.progress.send, self.buffer_size
        self._dispatch(
            "download",
            lambda: client.download(key, local_path, sink, buffer_size),
            lambda _r, err: TransferDone(error=err, direction=TransferDirection.DOWNLOAD, key=key),
        )

    # --- Event application ---

    def poll(self) -> int:
        """Apply every queued progress update and event. Never blocks."""
        count = self.transfers.poll(self.progress)
        for event in self.bus.drain():
            handler = self._handlers.get(type(event))
            if handler is None:
                logger.warning("No handler for event %s", type(event).__name__)
                continue
            handler(event)
            count += 1
        return count

    def dismiss_error(self) -> None:
        self.error = None

    def close(self) -> None:
        """Stop accepting results; tasks still running finish into closed channels."""
        self.bus.close()
        self.progress.close()

    def shutdown(self, grace: float | None = None) -> bool:
        self.close()
        if grace is None:
            return self.spawner.shutdown()
        return self.spawner.shutdown(grace)

    def _fail(self, error: StorageError) -> None:
        logger.error("Showing error: %s", error.user_message)
        self.error = error

    def _succeed(self) -> None:
        self.error = None

    def _log(self, kind: str, state: str, message: str) -> None:
        self.logs.append(ActivityEntry(kind, state, message))
        if self.db is not None:
            add_activity(self.db, kind, state, message)

    def _on_listing(self, event: ListingReady) -> None:
        if event.ok:
            if self.listing.apply_page(event.generation, event.page):
                self._succeed()
        elif self.listing.fail(event.generation, event.error):
            self._fail(event.error)

    def _on_deleted(self, event: Deleted) -> None:
        label = ", ".join(event.keys)
        if event.ok:
            self._succeed()
            self._log("delete", "success", label)
        else:
            self._fail(event.error)
            self._log("delete", "failed", f"{label}: {event.error.user_message}")
        # Partial failures and incomplete moves still changed the listing
        self.refresh()

    def _on_folder_created(self, event: FolderCreated) -> None:
        if event.ok:
            self._succeed()
            self._log("create_folder", "success", event.key)
            self.refresh()
        else:
            self._fail(event.error)

    def _on_metadata(self, event: MetadataReady) -> None:
        if event.ok:
            self._succeed()
            self.metadata = event.metadata
        else:
            self._fail(event.error)

    def _on_object(self, event: ObjectReady) -> None:
        if event.ok:
            self._succeed()
            self.preview = (event.key, event.data)
        else:
            self._fail(event.error)

    def _on_bucket_info(self, event: BucketInfoReady) -> None:
        if event.ok:
            self._succeed()
            self.bucket_info = event.info
        else:
            self._fail(event.error)

    def _on_copy(self, event: CopyDone) -> None:
        kind = "move" if event.is_move else "copy"
        if not event.ok:
            # The source is untouched when the copy fails
            self._fail(event.error)
            self._log(kind, "failed", f"{event.src_key} -> {event.dest_key}")
            return
        self._succeed()
        self._log(kind, "success", f"{event.src_key} -> {event.dest_key}")
        if event.is_move:
            self._delete_moved_source(event.src_key, event.dest_key)
        else:
            self.refresh()

    def _on_presign(self, event: PresignReady) -> None:
        if not event.ok:
            self._fail(event.error)
            return
        self._succeed()
        self.last_url = event.url
        for item in self.listing.items:
            if item.key == event.key:
                item.url = event.url

    def _on_navigation(self, event: NavigationRequested) -> None:
        if event.action is NavAction.BACK:
            changed = self.history.back() is not None
        elif event.action is NavAction.FORWARD:
            changed = self.history.forward() is not None
        else:
            changed = self.history.go_to(event.path)
        if changed:
            self.listing.filter_str = ""
            self.refresh()

    def _on_uploaded(self, event: Uploaded) -> None:
        failed = 0
        for key, error in event.results:
            self.transfers.finish(TransferDirection.UPLOAD, key, error)
            if error is None:
                self._log("upload", "success", key)
            else:
                failed += 1
                self._log("upload", "failed", f"{key}: {error.user_message}")
        if event.error is not None:
            self._fail(event.error)
        elif failed:
            self._fail(
                StorageError(f"{failed} of {len(event.results)} uploads failed.", "")
            )
        else:
            self._succeed()
        if failed < len(event.results):
            self.refresh()

    def _on_transfer_done(self, event: TransferDone) -> None:
        self.transfers.finish(event.direction, event.key, event.error)
        kind = event.direction.value
        if event.ok:
            self._succeed()
            self._log(kind, "success", event.key)
            if event.direction is TransferDirection.UPLOAD:
                self.refresh()
        else:
            self._fail(event.error)
            self._log(kind, "failed", f"{event.key}: {event.error.user_message}")
