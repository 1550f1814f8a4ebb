"""Client facade over the selected backend operator."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from bucketview.constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_DELIMITER,
    DEFAULT_PRESIGN_TTL,
    HEAD_SNIFF_BYTES,
    MAX_PRESIGN_TTL,
)
from bucketview.core import services
from bucketview.core.errors import (
    MoveIncompleteError,
    PartialBatchFailure,
    PermissionDeniedError,
    PresignError,
    StorageError,
    translate_error,
)
from bucketview.core.transfers import ProgressSink, download_file, upload_file
from bucketview.models.objects import BucketAcl, BucketInfo, ListingPage, Metadata

if TYPE_CHECKING:
    from bucketview.core.config import ClientConfig
    from bucketview.core.listing import ListOptions
    from bucketview.core.operators import Operator

logger = logging.getLogger("bucketview.client")


def upload_key(local_path: str | Path, dest_prefix: str = "") -> str:
    """Object key for uploading *local_path* into the folder *dest_prefix*."""
    prefix = dest_prefix
    if prefix and not prefix.endswith(DEFAULT_DELIMITER):
        prefix += DEFAULT_DELIMITER
    return prefix + Path(local_path).name


class Client:
    """Blocking operations against one bucket with error translation and logging.

    Every method raises a ``StorageError`` subclass on failure. Methods are
    safe to call from pool threads concurrently; the operator holds no
    mutable state besides its SDK client.
    """

    def __init__(self, config: ClientConfig, operator: Operator | None = None) -> None:
        self.config = config
        if operator is None:
            try:
                operator = services.create(config)
            except Exception as e:
                self._handle_error(e, "create")
        self._op = operator
        logger.info(
            "Client ready service=%s bucket='%s'", config.service.value, config.bucket
        )

    @property
    def operator(self) -> Operator:
        return self._op

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def _handle_error(self, exc: Exception, operation: str) -> None:
        error = translate_error(exc)
        logger.error("Operation '%s' failed: %s", operation, error.detail or error.user_message)
        raise error from exc

    # --- Reads ---

    def meta(self, key: str) -> Metadata:
        try:
            logger.debug("meta key='%s'", key)
            return self._op.stat(key)
        except Exception as e:
            self._handle_error(e, "meta")

    def head(self, key: str) -> tuple[Metadata, bytes]:
        """Metadata plus the first bytes of the object, for format sniffing."""
        metadata = self.meta(key)
        if metadata.size == 0:
            return metadata, b""
        stop = min(metadata.size, HEAD_SNIFF_BYTES)
        return metadata, self.get_range(key, 0, stop)

    def get(self, key: str) -> bytes:
        try:
            logger.debug("get key='%s'", key)
            return self._op.read(key)
        except Exception as e:
            self._handle_error(e, "get")

    def get_range(self, key: str, start: int, stop: int) -> bytes:
        """Bytes ``[start, stop)`` of *key*."""
        try:
            logger.debug("get_range key='%s' range=%d-%d", key, start, stop)
            return self._op.read(key, (start, stop))
        except Exception as e:
            self._handle_error(e, "get_range")

    def list(self, options: ListOptions) -> ListingPage:
        try:
            logger.debug(
                "list prefix='%s' token=%s max_keys=%d",
                options.prefix,
                options.continuation_token,
                options.max_keys,
            )
            return self._op.list(options)
        except Exception as e:
            self._handle_error(e, "list")

    # --- Writes ---

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        try:
            logger.debug("put key='%s' size=%d", key, len(data))
            self._op.write(key, data, content_type)
        except Exception as e:
            self._handle_error(e, "put")

    def create_folder(self, path: str) -> str:
        """Create a zero-byte folder marker and return its key."""
        key = path.strip()
        if not key.strip(DEFAULT_DELIMITER):
            raise StorageError("Folder name cannot be empty.", f"path={path!r}")
        if not key.endswith(DEFAULT_DELIMITER):
            key += DEFAULT_DELIMITER
        self.put(key, b"")
        return key

    def delete(self, key: str) -> None:
        try:
            logger.debug("delete key='%s'", key)
            self._op.delete(key)
        except Exception as e:
            self._handle_error(e, "delete")

    def delete_many(self, keys: Iterable[str]) -> None:
        """Best-effort batch delete.

        Raises PartialBatchFailure listing every key that was not deleted.
        """
        keys = list(keys)
        if not keys:
            return
        try:
            logger.debug("delete_many count=%d", len(keys))
            failures = self._op.delete_many(keys)
        except Exception as e:
            self._handle_error(e, "delete_many")
        if failures:
            logger.error("delete_many: %d of %d keys failed", len(failures), len(keys))
            raise PartialBatchFailure(
                f"{len(failures)} of {len(keys)} items could not be deleted.",
                failures,
                "; ".join(f"{key}: {err.user_message}" for key, err in failures),
            )

    def copy(self, src_key: str, dest_key: str, is_move: bool = False) -> tuple[str, bool]:
        """Server-side copy. Never deletes *src_key*; ``is_move`` is passed back
        so the caller can follow up with the delete."""
        try:
            logger.debug("copy '%s' -> '%s' move=%s", src_key, dest_key, is_move)
            self._op.copy(src_key, dest_key)
        except Exception as e:
            self._handle_error(e, "copy")
        return src_key, is_move

    def move(self, src_key: str, dest_key: str) -> None:
        """Copy then delete the source. Not atomic.

        The source is never touched if the copy fails. If the delete fails
        after a successful copy, MoveIncompleteError is raised and both keys
        exist.
        """
        self.copy(src_key, dest_key, is_move=True)
        try:
            self.delete(src_key)
        except StorageError as e:
            logger.warning("Move left both '%s' and '%s' in place", src_key, dest_key)
            raise MoveIncompleteError(src_key, dest_key, e) from e

    # --- Bucket ---

    def presign(self, key: str, ttl_seconds: int = DEFAULT_PRESIGN_TTL) -> str:
        if (
            isinstance(ttl_seconds, bool)
            or not isinstance(ttl_seconds, int)
            or not 0 < ttl_seconds <= MAX_PRESIGN_TTL
        ):
            raise PresignError(
                f"Link lifetime must be between 1 second and {MAX_PRESIGN_TTL // 86400} days.",
                f"ttl_seconds={ttl_seconds!r}",
            )
        try:
            logger.debug("presign key='%s' ttl=%d", key, ttl_seconds)
            return self._op.presign(key, ttl_seconds)
        except Exception as e:
            error = translate_error(e)
            logger.error("Operation 'presign' failed: %s", error.detail)
            raise PresignError(f"Could not create a link. {error.user_message}", error.detail) from e

    def bucket_info(self) -> BucketInfo:
        """Bucket ACL summary. Unreadable ACLs are reported as private."""
        try:
            logger.debug("bucket_info bucket='%s'", self.bucket)
            return self._op.bucket_info()
        except Exception as e:
            error = translate_error(e)
            if isinstance(error, PermissionDeniedError):
                logger.warning("Cannot read ACL of '%s', assuming private", self.bucket)
                return BucketInfo(name=self.bucket, acl=BucketAcl.PRIVATE)
            self._handle_error(e, "bucket_info")

    def is_private(self) -> bool:
        return self.bucket_info().is_private

    def bucket_url(self) -> str:
        return self._op.bucket_url()

    # --- Transfers ---

    def upload(
        self,
        local_path: str | Path,
        dest_prefix: str = "",
        progress: ProgressSink | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> str:
        """Stream a local file into *dest_prefix*. Returns the object key."""
        key = upload_key(local_path, dest_prefix)
        kwargs = {"buffer_size": buffer_size}
        if progress is not None:
            kwargs["progress"] = progress
        try:
            upload_file(self._op, local_path, key, **kwargs)
        except Exception as e:
            self._handle_error(e, "upload")
        return key

    def upload_many(
        self,
        paths: Iterable[str | Path],
        dest_prefix: str = "",
        progress: ProgressSink | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> list[tuple[str, StorageError | None]]:
        """Upload each path in turn; one ``(key, error)`` per path."""
        results: list[tuple[str, StorageError | None]] = []
        for path in paths:
            key = upload_key(path, dest_prefix)
            try:
                self.upload(path, dest_prefix, progress, buffer_size)
                results.append((key, None))
            except StorageError as e:
                results.append((key, e))
        return results

    def download(
        self,
        key: str,
        local_path: str | Path,
        progress: ProgressSink | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> int:
        """Stream *key* to *local_path*. Returns the byte count."""
        kwargs = {"buffer_size": buffer_size}
        if progress is not None:
            kwargs["progress"] = progress
        try:
            return download_file(self._op, key, local_path, **kwargs)
        except Exception as e:
            self._handle_error(e, "download")
