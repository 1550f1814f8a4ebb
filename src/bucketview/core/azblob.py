"""Azure Blob Storage operator built on azure-storage-blob.

The configured bucket is the container; the access key id is the storage
account name and the secret is its account key.
"""

from __future__ import annotations

import base64
import logging
import time
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from azure.storage.blob import (
    BlobBlock,
    BlobPrefix,
    BlobSasPermissions,
    ContainerClient,
    ContentSettings,
    generate_blob_sas,
)

from bucketview.constants import COPY_POLL_INTERVAL, COPY_TIMEOUT, MIN_PART_SIZE
from bucketview.core.errors import StorageError, translate_error
from bucketview.models.objects import (
    BucketAcl,
    BucketInfo,
    ListingPage,
    Metadata,
    StorageObject,
)

if TYPE_CHECKING:
    from bucketview.core.config import ClientConfig
    from bucketview.core.listing import ListOptions

logger = logging.getLogger("bucketview.azblob")


def _block_id(upload_id: str, index: int) -> str:
    """Block IDs must be base64 and the same length for every block of a blob."""
    return base64.b64encode(f"{upload_id}:{index:05d}".encode()).decode()


def _content_type(props) -> str | None:
    settings = getattr(props, "content_settings", None)
    return getattr(settings, "content_type", None) if settings is not None else None


class AzureBlobReader:
    """``readinto`` over a StorageStreamDownloader's chunk iterator."""

    def __init__(self, downloader) -> None:
        self._chunks = downloader.chunks()
        self._pending = b""

    def readinto(self, buffer: memoryview) -> int:
        if not self._pending:
            self._pending = next(self._chunks, b"")
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def close(self) -> None:
        self._pending = b""


class AzureBlobWriter:
    """Stages blocks as they fill and commits the block list on close."""

    def __init__(
        self,
        blob_client,
        content_type: str | None = None,
        block_size: int = MIN_PART_SIZE,
    ) -> None:
        self._blob = blob_client
        self._content_type = content_type
        self._block_size = block_size
        self._upload_id = uuid.uuid4().hex
        self._pending = bytearray()
        self._blocks: list[BlobBlock] = []

    def write(self, data: memoryview | bytes) -> None:
        self._pending += data
        if len(self._pending) >= self._block_size:
            self._stage()

    def _stage(self) -> None:
        block_id = _block_id(self._upload_id, len(self._blocks))
        self._blob.stage_block(block_id, bytes(self._pending), length=len(self._pending))
        self._blocks.append(BlobBlock(block_id=block_id))
        self._pending.clear()

    def _settings(self) -> ContentSettings | None:
        return ContentSettings(content_type=self._content_type) if self._content_type else None

    def close(self) -> None:
        if not self._blocks:
            self._blob.upload_blob(
                bytes(self._pending), overwrite=True, content_settings=self._settings()
            )
            self._pending.clear()
            return
        if self._pending:
            self._stage()
        self._blob.commit_block_list(self._blocks, content_settings=self._settings())

    def abort(self) -> None:
        # Uncommitted blocks are garbage-collected by the service
        self._pending.clear()
        self._blocks.clear()


class AzureBlobOperator:
    def __init__(
        self,
        config: ClientConfig,
        container_client: ContainerClient | None = None,
        copy_poll_interval: float = COPY_POLL_INTERVAL,
        copy_timeout: float = COPY_TIMEOUT,
    ) -> None:
        self.bucket = config.bucket
        self.endpoint = config.endpoint
        self._account_name = config.access_key_id
        self._account_key = config.access_key_secret
        self._copy_poll_interval = copy_poll_interval
        self._copy_timeout = copy_timeout
        if container_client is None:
            container_client = ContainerClient(
                account_url=config.endpoint,
                container_name=config.bucket,
                credential={"account_name": config.access_key_id, "account_key": config.access_key_secret},
                connection_timeout=config.timeout,
                read_timeout=config.timeout,
                retry_total=config.retries,
            )
        self._container = container_client
        logger.info("AzureBlobOperator created container='%s' endpoint='%s'", self.bucket, self.endpoint)

    def stat(self, key: str) -> Metadata:
        props = self._container.get_blob_client(key).get_blob_properties()
        return Metadata(
            key=key,
            size=props.size,
            content_type=_content_type(props),
            last_modified=props.last_modified,
            etag=props.etag,
        )

    def read(self, key: str, byte_range: tuple[int, int] | None = None) -> bytes:
        blob = self._container.get_blob_client(key)
        if byte_range is None:
            return blob.download_blob().readall()
        start, stop = byte_range
        if start < 0 or stop <= start:
            raise ValueError(f"invalid byte range {byte_range!r}")
        return blob.download_blob(offset=start, length=stop - start).readall()

    def open_reader(self, key: str) -> AzureBlobReader:
        return AzureBlobReader(self._container.get_blob_client(key).download_blob())

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None:
        settings = ContentSettings(content_type=content_type) if content_type else None
        self._container.get_blob_client(key).upload_blob(data, overwrite=True, content_settings=settings)

    def open_writer(self, key: str, content_type: str | None = None) -> AzureBlobWriter:
        return AzureBlobWriter(self._container.get_blob_client(key), content_type)

    def delete(self, key: str) -> None:
        self._container.delete_blob(key)

    def delete_many(self, keys: list[str]) -> list[tuple[str, StorageError]]:
        failed: list[tuple[str, StorageError]] = []
        for key in keys:
            try:
                self._container.delete_blob(key)
            except Exception as e:
                failed.append((key, translate_error(e)))
        return failed

    def copy(self, src_key: str, dest_key: str) -> None:
        """Server-side copy that returns only once the copy has succeeded.

        Azure may accept the copy as ``pending``; the destination is polled
        until it reports a final status. Anything but ``success`` raises.
        """
        source_url = self._container.get_blob_client(src_key).url
        dest = self._container.get_blob_client(dest_key)
        result = dest.start_copy_from_url(source_url)
        status = result.get("copy_status")
        deadline = time.monotonic() + self._copy_timeout
        while status == "pending":
            if time.monotonic() >= deadline:
                dest.abort_copy(result.get("copy_id"))
                raise StorageError(
                    "The copy did not finish in time and was cancelled.",
                    f"copy '{src_key}' -> '{dest_key}' still pending after {self._copy_timeout}s",
                )
            time.sleep(self._copy_poll_interval)
            copy_props = dest.get_blob_properties().copy
            status = copy_props.status
            logger.debug(
                "copy '%s' -> '%s' status=%s progress=%s",
                src_key,
                dest_key,
                status,
                copy_props.progress,
            )
        if status != "success":
            raise StorageError(
                "The copy did not complete.",
                f"copy '{src_key}' -> '{dest_key}' ended with status {status!r}",
            )

    def list(self, options: ListOptions) -> ListingPage:
        if options.delimiter:
            paged = self._container.walk_blobs(
                name_starts_with=options.prefix or None,
                delimiter=options.delimiter,
                results_per_page=options.max_keys,
            )
        else:
            paged = self._container.list_blobs(
                name_starts_with=options.prefix or None,
                results_per_page=options.max_keys,
            )
        pages = paged.by_page(continuation_token=options.continuation_token)
        items = list(next(pages, []))
        token = pages.continuation_token or None

        objects: list[StorageObject] = []
        prefixes: list[StorageObject] = []
        for item in items:
            name = item.name
            # start_after has no server-side equivalent here
            if options.start_after and name <= options.start_after:
                continue
            if isinstance(item, BlobPrefix):
                prefixes.append(StorageObject.folder(name))
                continue
            if options.delimiter and name.endswith(options.delimiter):
                continue
            tier = getattr(item, "blob_tier", None)
            objects.append(
                StorageObject(
                    key=name,
                    size=item.size or 0,
                    last_modified=item.last_modified,
                    etag=item.etag,
                    storage_class=str(tier) if tier else None,
                    content_type=_content_type(item),
                )
            )

        return ListingPage(
            prefix=options.prefix,
            delimiter=options.delimiter,
            start_after=options.start_after,
            max_keys=options.max_keys,
            is_truncated=token is not None,
            next_continuation_token=token,
            objects=objects,
            common_prefixes=prefixes,
        )

    def presign(self, key: str, ttl_seconds: int) -> str:
        expiry = datetime.now(UTC) + timedelta(seconds=ttl_seconds)
        sas = generate_blob_sas(
            account_name=self._account_name,
            container_name=self.bucket,
            blob_name=key,
            account_key=self._account_key,
            permission=BlobSasPermissions(read=True),
            expiry=expiry,
        )
        return f"{self._container.get_blob_client(key).url}?{sas}"

    def bucket_info(self) -> BucketInfo:
        policy = self._container.get_container_access_policy()
        # "blob" or "container" both allow anonymous reads; None is private
        acl = BucketAcl.PUBLIC_READ if policy.get("public_access") else BucketAcl.PRIVATE
        return BucketInfo(name=self.bucket, acl=acl)

    def bucket_url(self) -> str:
        return f"{self.endpoint}/{self.bucket}"
