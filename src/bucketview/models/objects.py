"""Storage object, listing page and bucket value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ObjectKind(Enum):
    FILE = "file"
    # Synthesized from a listing's common prefixes; never stored as such
    FOLDER = "folder"


def name_from_key(key: str) -> str:
    """Last non-empty path segment: ``"a/b/"`` -> ``"b"``, ``"a/c.txt"`` -> ``"c.txt"``."""
    parts = [p for p in key.split("/") if p]
    return parts[-1] if parts else ""


def _format_size(size_bytes: int | None) -> str:
    """Format bytes into human-readable string."""
    if size_bytes is None:
        return ""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024**3):.1f} GB"


@dataclass
class StorageObject:
    """One entry in a listing: a stored file or a synthetic folder.

    Only ``selected`` and ``url`` change after construction; everything else
    is replaced wholesale on the next listing refresh.
    """

    key: str
    kind: ObjectKind = ObjectKind.FILE
    size: int = 0
    last_modified: datetime | None = None
    etag: str | None = None
    storage_class: str | None = None
    owner_id: str | None = None
    owner_display_name: str | None = None
    content_type: str | None = None
    selected: bool = False
    url: str | None = None

    @classmethod
    def folder(cls, key: str) -> StorageObject:
        return cls(key=key, kind=ObjectKind.FOLDER)

    @property
    def name(self) -> str:
        return name_from_key(self.key)

    @property
    def is_file(self) -> bool:
        return self.kind is ObjectKind.FILE

    @property
    def is_folder(self) -> bool:
        return self.kind is ObjectKind.FOLDER

    @property
    def size_string(self) -> str:
        if self.is_folder:
            return "Folder"
        return _format_size(self.size)

    @property
    def date_string(self) -> str:
        if self.last_modified is None:
            return "_"
        return self.last_modified.strftime("%Y-%m-%d %H:%M:%S")


@dataclass(frozen=True)
class Metadata:
    key: str
    size: int
    content_type: str | None = None
    last_modified: datetime | None = None
    etag: str | None = None


@dataclass
class ListingPage:
    """One page of a delimiter listing.

    ``next_continuation_token`` is None exactly when this is the last page.
    """

    prefix: str = ""
    delimiter: str = "/"
    start_after: str | None = None
    max_keys: int = 0
    is_truncated: bool = False
    next_continuation_token: str | None = None
    objects: list[StorageObject] = field(default_factory=list)
    common_prefixes: list[StorageObject] = field(default_factory=list)

    def contents(self) -> list[StorageObject]:
        """Folders first, then files, as the backend returned them."""
        return list(self.common_prefixes) + list(self.objects)


class BucketAcl(Enum):
    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"


@dataclass(frozen=True)
class BucketInfo:
    name: str
    acl: BucketAcl = BucketAcl.PRIVATE

    @property
    def is_private(self) -> bool:
        return self.acl is BucketAcl.PRIVATE
