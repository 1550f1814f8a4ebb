"""Unified backend operation set and its boto3 implementation.

S3, OSS, GCS (XML interoperability API) and S3-compatible services all speak
the S3 protocol, so they share ``S3Operator`` and differ only in endpoint,
region and addressing policy. Operators raise raw SDK exceptions; the client
facade translates them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from bucketview.constants import DELETE_BATCH_SIZE, MIN_PART_SIZE
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

logger = logging.getLogger("bucketview.operators")

ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"


class ObjectReader(Protocol):
    def readinto(self, buffer: memoryview) -> int: ...

    def close(self) -> None: ...


class ObjectWriter(Protocol):
    def write(self, data: memoryview | bytes) -> None: ...

    def close(self) -> None:
        """Commit everything written so far as the object's content."""
        ...

    def abort(self) -> None:
        """Discard the write and release any server-side upload state."""
        ...


class Operator(Protocol):
    """Operation set every backend adapter implements."""

    bucket: str

    def stat(self, key: str) -> Metadata: ...

    def read(self, key: str, byte_range: tuple[int, int] | None = None) -> bytes: ...

    def open_reader(self, key: str) -> ObjectReader: ...

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    def open_writer(self, key: str, content_type: str | None = None) -> ObjectWriter: ...

    def delete(self, key: str) -> None: ...

    def delete_many(self, keys: list[str]) -> list[tuple[str, StorageError]]: ...

    def list(self, options: ListOptions) -> ListingPage: ...

    def copy(self, src_key: str, dest_key: str) -> None: ...

    def presign(self, key: str, ttl_seconds: int) -> str: ...

    def bucket_info(self) -> BucketInfo: ...

    def bucket_url(self) -> str: ...


def range_header(byte_range: tuple[int, int]) -> str:
    """HTTP Range for the half-open interval ``[start, stop)``."""
    start, stop = byte_range
    if start < 0 or stop <= start:
        raise ValueError(f"invalid byte range {byte_range!r}")
    return f"bytes={start}-{stop - 1}"


class S3ObjectReader:
    """Adapts a botocore StreamingBody to ``readinto``."""

    def __init__(self, body) -> None:
        self._body = body

    def readinto(self, buffer: memoryview) -> int:
        data = self._body.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def close(self) -> None:
        self._body.close()


class S3ObjectWriter:
    """Streams writes into a multipart upload.

    Parts are cut once ``part_size`` bytes are pending, so memory stays at
    about one part plus the caller's chunk. Objects smaller than one part
    are sent with a single PutObject on close.
    """

    def __init__(
        self,
        client,
        bucket: str,
        key: str,
        content_type: str | None = None,
        part_size: int = MIN_PART_SIZE,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._key = key
        self._content_type = content_type
        self._part_size = max(part_size, MIN_PART_SIZE)
        self._pending = bytearray()
        self._parts: list[dict] = []
        self._upload_id: str | None = None

    def write(self, data: memoryview | bytes) -> None:
        self._pending += data
        if len(self._pending) >= self._part_size:
            self._flush_part()

    def _extra(self) -> dict:
        return {"ContentType": self._content_type} if self._content_type else {}

    def _flush_part(self) -> None:
        if self._upload_id is None:
            response = self._client.create_multipart_upload(
                Bucket=self._bucket, Key=self._key, **self._extra()
            )
            self._upload_id = response["UploadId"]
            logger.debug("Multipart upload initiated key='%s' upload_id=%s", self._key, self._upload_id)
        part_number = len(self._parts) + 1
        response = self._client.upload_part(
            Bucket=self._bucket,
            Key=self._key,
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=bytes(self._pending),
        )
        self._parts.append({"ETag": response["ETag"], "PartNumber": part_number})
        self._pending.clear()

    def close(self) -> None:
        if self._upload_id is None:
            self._client.put_object(
                Bucket=self._bucket, Key=self._key, Body=bytes(self._pending), **self._extra()
            )
            self._pending.clear()
            return
        if self._pending:
            self._flush_part()
        self._client.complete_multipart_upload(
            Bucket=self._bucket,
            Key=self._key,
            UploadId=self._upload_id,
            MultipartUpload={"Parts": self._parts},
        )
        logger.debug("Multipart upload completed key='%s' parts=%d", self._key, len(self._parts))

    def abort(self) -> None:
        self._pending.clear()
        if self._upload_id is None:
            return
        try:
            self._client.abort_multipart_upload(
                Bucket=self._bucket, Key=self._key, UploadId=self._upload_id
            )
        except Exception:
            logger.warning(
                "Failed to abort multipart upload key='%s' upload_id=%s",
                self._key,
                self._upload_id,
                exc_info=True,
            )


class S3Operator:
    """boto3-backed operator for any S3-protocol service."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        endpoint: str | None = None,
        region: str | None = None,
        addressing_style: str = "auto",
        compat_checksums: bool = False,
    ) -> None:
        self.bucket = config.bucket
        self.endpoint = endpoint if endpoint is not None else config.endpoint
        self.region = region or config.region
        self.addressing_style = addressing_style

        options = {
            "signature_version": "s3v4",
            "connect_timeout": config.timeout,
            "read_timeout": config.timeout,
            # No automatic retries unless the config asks for them
            "retries": {"total_max_attempts": config.retries + 1, "mode": "standard"},
            "s3": {"addressing_style": addressing_style},
        }
        if compat_checksums:
            # Third-party S3 endpoints reject the default CRC trailers
            options["request_checksum_calculation"] = "when_required"
            options["response_checksum_validation"] = "when_required"

        # Explicit credentials and region: no shared-credential or
        # instance-metadata lookups happen for this session.
        session = boto3.session.Session(
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.access_key_secret,
            aws_session_token=config.security_token or None,
            region_name=self.region,
        )
        self._client = session.client(
            "s3",
            endpoint_url=self.endpoint or None,
            config=BotoConfig(**options),
        )
        logger.info(
            "S3Operator created bucket='%s' endpoint='%s' region='%s' addressing=%s",
            self.bucket,
            self.endpoint,
            self.region,
            addressing_style,
        )

    # --- Reads ---

    def stat(self, key: str) -> Metadata:
        resp = self._client.head_object(Bucket=self.bucket, Key=key)
        return Metadata(
            key=key,
            size=resp.get("ContentLength", 0),
            content_type=resp.get("ContentType"),
            last_modified=resp.get("LastModified"),
            etag=resp.get("ETag"),
        )

    def read(self, key: str, byte_range: tuple[int, int] | None = None) -> bytes:
        kwargs = {"Bucket": self.bucket, "Key": key}
        if byte_range is not None:
            kwargs["Range"] = range_header(byte_range)
        body = self._client.get_object(**kwargs)["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def open_reader(self, key: str) -> S3ObjectReader:
        return S3ObjectReader(self._client.get_object(Bucket=self.bucket, Key=key)["Body"])

    # --- Writes ---

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None:
        kwargs = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        self._client.put_object(**kwargs)

    def open_writer(self, key: str, content_type: str | None = None) -> S3ObjectWriter:
        return S3ObjectWriter(self._client, self.bucket, key, content_type)

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)

    def delete_many(self, keys: list[str]) -> list[tuple[str, StorageError]]:
        failed: list[tuple[str, StorageError]] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            response = self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            for err in response.get("Errors", []):
                code = err.get("Code", "")
                error = translate_error(
                    _client_error(code, err.get("Message", ""), "DeleteObjects")
                )
                failed.append((err["Key"], error))
        return failed

    def copy(self, src_key: str, dest_key: str) -> None:
        self._client.copy_object(
            Bucket=self.bucket,
            Key=dest_key,
            CopySource={"Bucket": self.bucket, "Key": src_key},
            MetadataDirective="COPY",
        )

    # --- Listing ---

    def list(self, options: ListOptions) -> ListingPage:
        kwargs = {"Bucket": self.bucket, "Prefix": options.prefix, "MaxKeys": options.max_keys}
        if options.delimiter:
            kwargs["Delimiter"] = options.delimiter
        if options.continuation_token:
            kwargs["ContinuationToken"] = options.continuation_token
        if options.start_after:
            kwargs["StartAfter"] = options.start_after
        resp = self._client.list_objects_v2(**kwargs)

        objects = []
        for obj in resp.get("Contents", []):
            key = obj["Key"]
            # Zero-byte folder markers duplicate the common-prefix entry
            if options.delimiter and key.endswith(options.delimiter):
                continue
            owner = obj.get("Owner") or {}
            objects.append(
                StorageObject(
                    key=key,
                    size=obj.get("Size", 0),
                    last_modified=obj.get("LastModified"),
                    etag=obj.get("ETag"),
                    storage_class=obj.get("StorageClass"),
                    owner_id=owner.get("ID"),
                    owner_display_name=owner.get("DisplayName"),
                )
            )
        prefixes = [StorageObject.folder(cp["Prefix"]) for cp in resp.get("CommonPrefixes", [])]

        truncated = bool(resp.get("IsTruncated", False))
        return ListingPage(
            prefix=options.prefix,
            delimiter=options.delimiter,
            start_after=options.start_after,
            max_keys=options.max_keys,
            is_truncated=truncated,
            next_continuation_token=resp.get("NextContinuationToken") if truncated else None,
            objects=objects,
            common_prefixes=prefixes,
        )

    # --- Bucket ---

    def presign(self, key: str, ttl_seconds: int) -> str:
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )

    def bucket_info(self) -> BucketInfo:
        resp = self._client.get_bucket_acl(Bucket=self.bucket)
        permissions = {
            grant.get("Permission")
            for grant in resp.get("Grants", [])
            if grant.get("Grantee", {}).get("URI") == ALL_USERS_URI
        }
        if "WRITE" in permissions or "FULL_CONTROL" in permissions:
            acl = BucketAcl.PUBLIC_READ_WRITE
        elif "READ" in permissions:
            acl = BucketAcl.PUBLIC_READ
        else:
            acl = BucketAcl.PRIVATE
        return BucketInfo(name=self.bucket, acl=acl)

    def bucket_url(self) -> str:
        if not self.endpoint:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"
        scheme, _, host = self.endpoint.partition("://")
        if self.addressing_style == "path":
            return f"{self.endpoint}/{self.bucket}"
        return f"{scheme}://{self.bucket}.{host}"


def _client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)
