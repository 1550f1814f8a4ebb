"""Error taxonomy and translation of SDK exceptions into plain-language errors."""

from __future__ import annotations

import logging

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

logger = logging.getLogger("bucketview.errors")


class StorageError(Exception):
    """Base error: a user-facing message plus the raw detail for the logs."""

    def __init__(self, user_message: str, detail: str = "") -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.detail = detail


class ConfigError(StorageError):
    """Missing or malformed connection parameters. Never retried."""


class UnsupportedServiceError(ConfigError):
    """No adapter is registered for the requested service type."""


class TransportError(StorageError):
    """Network, timeout, DNS or protocol failure."""


class NotFoundError(StorageError):
    """The object, prefix or bucket does not exist."""


class PermissionDeniedError(StorageError):
    """Credentials or ACL rejected the request."""


class PresignError(StorageError):
    """A presigned URL could not be produced for the requested lifetime."""


class TransferIoError(StorageError):
    """A local filesystem failure aborted a transfer."""


class PartialBatchFailure(StorageError):
    """Some keys of a batch delete failed.

    ``failures`` lists ``(key, error)`` for every key that was not deleted.
    """

    def __init__(
        self, user_message: str, failures: list[tuple[str, StorageError]], detail: str = ""
    ) -> None:
        super().__init__(user_message, detail)
        self.failures = failures


class MoveIncompleteError(StorageError):
    """The copy half of a move succeeded but deleting the source failed.

    Both ``src`` and ``dest`` exist afterwards.
    """

    def __init__(self, src: str, dest: str, cause: StorageError) -> None:
        super().__init__(
            f"Copied '{src}' to '{dest}' but could not delete the original. "
            f"Both copies now exist. {cause.user_message}",
            cause.detail,
        )
        self.src = src
        self.dest = dest
        self.cause = cause


# Maps provider error codes to (user-facing message, suggestion, error class)
ERROR_CODES: dict[str, tuple[str, str, type[StorageError]]] = {
    "InvalidAccessKeyId": (
        "Invalid access key.",
        "Check that your Access Key ID is correct.",
        PermissionDeniedError,
    ),
    "SignatureDoesNotMatch": (
        "Invalid secret key.",
        "Check that your Secret Access Key is correct.",
        PermissionDeniedError,
    ),
    "AccessDenied": (
        "Access denied.",
        "Your credentials don't have permission for this action.",
        PermissionDeniedError,
    ),
    "AuthenticationFailed": (
        "Authentication failed.",
        "Check the account name and account key.",
        PermissionDeniedError,
    ),
    "AuthorizationFailure": (
        "Access denied.",
        "Your credentials don't have permission for this action.",
        PermissionDeniedError,
    ),
    "ExpiredToken": (
        "Your credentials have expired.",
        "Update your credentials and log in again.",
        PermissionDeniedError,
    ),
    "NoSuchBucket": (
        "Bucket not found.",
        "The bucket may have been deleted or you may have a typo in the name.",
        NotFoundError,
    ),
    "ContainerNotFound": (
        "Container not found.",
        "The container may have been deleted or you may have a typo in the name.",
        NotFoundError,
    ),
    "NoSuchKey": (
        "File not found.",
        "The file may have been deleted or moved by someone else.",
        NotFoundError,
    ),
    "BlobNotFound": (
        "File not found.",
        "The file may have been deleted or moved by someone else.",
        NotFoundError,
    ),
    "NotFound": ("File not found.", "", NotFoundError),
    "404": ("File not found.", "", NotFoundError),
    "403": ("Access denied.", "", PermissionDeniedError),
    "InvalidBucketName": (
        "Invalid bucket name.",
        "Bucket names must be 3-63 characters, lowercase letters, numbers, and hyphens.",
        ConfigError,
    ),
    "KeyTooLongError": (
        "File name is too long.",
        "Object keys can be at most 1024 bytes.",
        StorageError,
    ),
    "SlowDown": (
        "The service is asking us to slow down.",
        "Too many requests. Wait a moment and try again.",
        TransportError,
    ),
    "ServiceUnavailable": (
        "The service is temporarily unavailable.",
        "Try again in a few moments.",
        TransportError,
    ),
    "InternalError": (
        "The service encountered an internal error.",
        "Try again in a few moments.",
        TransportError,
    ),
    "RequestTimeout": (
        "The request timed out.",
        "Check your network connection and try again.",
        TransportError,
    ),
}


def _from_code(code: str, message: str, raw_detail: str) -> StorageError:
    if code in ERROR_CODES:
        user_msg, suggestion, cls = ERROR_CODES[code]
        if suggestion:
            user_msg = f"{user_msg} {suggestion}"
        return cls(user_msg, raw_detail)
    if message:
        return StorageError(f"Storage error: {message}", raw_detail)
    return StorageError("A storage service error occurred.", raw_detail)


def translate_error(exc: Exception) -> StorageError:
    """Translate an SDK or OS exception into a typed ``StorageError``.

    Already-translated errors pass through unchanged.
    """
    if isinstance(exc, StorageError):
        return exc

    raw_detail = str(exc)

    # botocore
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        if not code:
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            code = str(status or "")
        return _from_code(code, error.get("Message", ""), raw_detail)

    if isinstance(exc, (EndpointConnectionError, ConnectionClosedError)):
        return TransportError(
            "Could not connect to the storage service. "
            "Check your network connection and endpoint.",
            raw_detail,
        )

    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)):
        return TransportError(
            "The connection timed out. Check your network connection.", raw_detail
        )

    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return ConfigError("Access key and secret are required.", raw_detail)

    if isinstance(exc, BotoCoreError):
        return TransportError("The storage request failed.", raw_detail)

    # azure-core
    if isinstance(exc, ResourceNotFoundError):
        return _from_code(str(exc.error_code or "NotFound"), "", raw_detail)

    if isinstance(exc, ClientAuthenticationError):
        return _from_code(str(exc.error_code or "AuthenticationFailed"), "", raw_detail)

    if isinstance(exc, HttpResponseError):
        code = str(exc.error_code or exc.status_code or "")
        return _from_code(code, exc.reason or "", raw_detail)

    if isinstance(exc, (ServiceRequestError, ServiceResponseError)):
        return TransportError(
            "Could not connect to the storage service. "
            "Check your network connection and endpoint.",
            raw_detail,
        )

    # Local filesystem
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return TransportError("The connection failed.", raw_detail)

    if isinstance(exc, OSError):
        return TransferIoError(f"Local file error: {exc.strerror or exc}", raw_detail)

    logger.debug("Untranslated exception type %s", type(exc).__name__)
    return StorageError("An unexpected error occurred.", raw_detail)
