"""Listing requests, page merging and the accumulated view of one folder."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from bucketview.constants import DEFAULT_DELIMITER, DEFAULT_PAGE_LIMIT
from bucketview.models.objects import ListingPage, StorageObject

if TYPE_CHECKING:
    from bucketview.core.errors import StorageError

logger = logging.getLogger("bucketview.listing")


@dataclass(frozen=True)
class ListOptions:
    """Typed request options for one listing page."""

    prefix: str = ""
    delimiter: str = DEFAULT_DELIMITER
    continuation_token: str | None = None
    max_keys: int = DEFAULT_PAGE_LIMIT
    start_after: str | None = None

    def next_page(self, token: str) -> ListOptions:
        return dataclasses.replace(self, continuation_token=token)


def build_prefix(current_path: str, filter_str: str = "", delimiter: str = DEFAULT_DELIMITER) -> str:
    """Folder path normalized to end with the delimiter, plus a key-prefix filter."""
    prefix = current_path
    if prefix and not prefix.endswith(delimiter):
        prefix += delimiter
    if filter_str:
        prefix += filter_str
    return prefix


def build_list_options(
    current_path: str,
    filter_str: str = "",
    page_size: int = DEFAULT_PAGE_LIMIT,
    continuation_token: str | None = None,
    delimiter: str = DEFAULT_DELIMITER,
) -> ListOptions:
    return ListOptions(
        prefix=build_prefix(current_path, filter_str, delimiter),
        delimiter=delimiter,
        continuation_token=continuation_token,
        max_keys=page_size,
    )


def merge_page(page: ListingPage) -> list[StorageObject]:
    """Folders then files, dropping zero-byte folder markers from the files."""
    delimiter = page.delimiter or DEFAULT_DELIMITER
    files = [obj for obj in page.objects if not obj.key.endswith(delimiter)]
    return list(page.common_prefixes) + files


def merge_pages(pages: list[ListingPage]) -> list[StorageObject]:
    """Accumulate pages in order, skipping keys already seen."""
    seen: set[str] = set()
    merged: list[StorageObject] = []
    for page in pages:
        for item in merge_page(page):
            if item.key in seen:
                continue
            seen.add(item.key)
            merged.append(item)
    return merged


class ListingStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"


class ListingView:
    """Accumulated contents of one folder, owned by the UI thread.

    Idle -> Loading(first page) -> Idle(partial) -> Loading(next) -> ... ->
    Idle(complete). ``refresh`` restarts from the first page and discards
    everything; pages answering an older refresh are ignored by generation.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_LIMIT, delimiter: str = DEFAULT_DELIMITER) -> None:
        self.page_size = page_size
        self.delimiter = delimiter
        self.current_path = ""
        self.filter_str = ""
        self.items: list[StorageObject] = []
        self.next_query: ListOptions | None = None
        self.status = ListingStatus.IDLE
        self.generation = 0
        self.error: StorageError | None = None
        self._seen: set[str] = set()

    @property
    def is_loading(self) -> bool:
        return self.status is ListingStatus.LOADING

    @property
    def complete(self) -> bool:
        return self.status is ListingStatus.IDLE and self.next_query is None

    @property
    def has_more(self) -> bool:
        return self.next_query is not None

    def refresh(self, current_path: str | None = None, filter_str: str | None = None) -> ListOptions:
        """Discard accumulated entries and return the first-page request."""
        if current_path is not None:
            self.current_path = current_path
        if filter_str is not None:
            self.filter_str = filter_str
        self.generation += 1
        self.items = []
        self._seen = set()
        self.error = None
        query = build_list_options(
            self.current_path, self.filter_str, self.page_size, delimiter=self.delimiter
        )
        self.next_query = query
        self.status = ListingStatus.LOADING
        logger.debug("Listing refresh gen=%d prefix='%s'", self.generation, query.prefix)
        return query

    def load_more(self) -> ListOptions | None:
        """Request for the next page, or None when loading or complete."""
        if self.is_loading or self.next_query is None:
            return None
        self.status = ListingStatus.LOADING
        return self.next_query

    def apply_page(self, generation: int, page: ListingPage) -> bool:
        """Append one page. Returns False for a page from a stale refresh."""
        if generation != self.generation:
            logger.debug("Dropping stale listing page gen=%d (current %d)", generation, self.generation)
            return False
        for item in merge_page(page):
            if item.key in self._seen:
                continue
            self._seen.add(item.key)
            self.items.append(item)
        token = page.next_continuation_token
        if token and self.next_query is not None:
            self.next_query = self.next_query.next_page(token)
        else:
            self.next_query = None
        self.status = ListingStatus.IDLE
        self.error = None
        return True

    def fail(self, generation: int, error: StorageError) -> bool:
        if generation != self.generation:
            return False
        self.status = ListingStatus.IDLE
        self.error = error
        return True

    def selected(self) -> list[StorageObject]:
        return [item for item in self.items if item.selected]
