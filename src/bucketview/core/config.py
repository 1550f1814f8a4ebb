"""Connection parameters shared read-only by every operation of one client."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

from bucketview.constants import DEFAULT_REGION, DEFAULT_TIMEOUT
from bucketview.core.errors import ConfigError, UnsupportedServiceError

logger = logging.getLogger("bucketview.config")


class ServiceType(Enum):
    S3 = "s3"
    OSS = "oss"
    GCS = "gcs"
    AZURE_BLOB = "azblob"
    S3_COMPATIBLE = "s3_compatible"

    @classmethod
    def parse(cls, value: str | ServiceType) -> ServiceType:
        """Accept either a member or its tag string ("s3", "azblob", ...)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnsupportedServiceError(
                f"Unsupported storage service: {value!r}", str(value)
            ) from None


def check_bucket_name(name: str) -> None:
    """Raise ConfigError unless *name* is 3-63 chars of [a-z0-9-] with no edge hyphen."""
    length = len(name)
    if length < 3 or length > 63:
        raise ConfigError(
            "Invalid bucket name.",
            f"bucket name {name!r} length must be between 3 and 63, got {length}",
        )
    for ch in name:
        if not ("a" <= ch <= "z" or "0" <= ch <= "9" or ch == "-"):
            raise ConfigError(
                "Invalid bucket name.",
                f"bucket name {name!r} can only include lowercase letters, numbers, and -",
            )
    if name.startswith("-") or name.endswith("-"):
        raise ConfigError(
            "Invalid bucket name.",
            f"bucket name {name!r} must start and end with a lowercase letter or number",
        )


def check_endpoint(endpoint: str) -> None:
    parsed = urlparse(endpoint)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(
            "Invalid endpoint.",
            f"endpoint {endpoint!r} must be an http(s) URL such as https://s3.example.com",
        )


@dataclass(frozen=True)
class ClientConfig:
    service: ServiceType = ServiceType.S3
    endpoint: str = ""
    access_key_id: str = ""
    access_key_secret: str = dataclasses.field(default="", repr=False)
    bucket: str = ""
    region: str = DEFAULT_REGION
    timeout: float = DEFAULT_TIMEOUT
    retries: int = 0
    # None means decide from the endpoint domain
    virtual_host_style: bool | None = None
    security_token: str = dataclasses.field(default="", repr=False)

    @staticmethod
    def builder() -> ClientConfigBuilder:
        return ClientConfigBuilder()

    @property
    def endpoint_host(self) -> str:
        return urlparse(self.endpoint).hostname or ""

    def validate(self) -> None:
        """Check the fields every service needs. Raises ConfigError."""
        if not self.bucket:
            raise ConfigError("A bucket name is required.", "bucket is empty")
        check_bucket_name(self.bucket)
        if not self.access_key_id or not self.access_key_secret:
            raise ConfigError(
                "Access key and secret are required.", "access_key_id/secret is empty"
            )
        if self.endpoint:
            check_endpoint(self.endpoint)
        elif self.service is not ServiceType.S3:
            raise ConfigError(
                "An endpoint is required.",
                f"endpoint is empty for service {self.service.value}",
            )
        if self.timeout <= 0:
            raise ConfigError("Timeout must be positive.", f"timeout={self.timeout}")
        if self.retries < 0:
            raise ConfigError("Retry count cannot be negative.", f"retries={self.retries}")


class ClientConfigBuilder:
    """Fluent builder; ``build()`` validates and freezes the result."""

    def __init__(self) -> None:
        self._fields: dict[str, object] = {}

    def service(self, service: ServiceType | str) -> ClientConfigBuilder:
        self._fields["service"] = ServiceType.parse(service)
        return self

    def endpoint(self, endpoint: str) -> ClientConfigBuilder:
        self._fields["endpoint"] = endpoint.strip().rstrip("/")
        return self

    def access_key(self, key: str) -> ClientConfigBuilder:
        self._fields["access_key_id"] = key.strip()
        return self

    def access_secret(self, secret: str) -> ClientConfigBuilder:
        self._fields["access_key_secret"] = secret.strip()
        return self

    def bucket(self, bucket: str) -> ClientConfigBuilder:
        self._fields["bucket"] = bucket.strip()
        return self

    def region(self, region: str) -> ClientConfigBuilder:
        self._fields["region"] = region.strip() or DEFAULT_REGION
        return self

    def timeout(self, seconds: float) -> ClientConfigBuilder:
        self._fields["timeout"] = float(seconds)
        return self

    def retries(self, count: int) -> ClientConfigBuilder:
        self._fields["retries"] = int(count)
        return self

    def virtual_host_style(self, enabled: bool | None) -> ClientConfigBuilder:
        self._fields["virtual_host_style"] = enabled
        return self

    def security_token(self, token: str) -> ClientConfigBuilder:
        self._fields["security_token"] = token
        return self

    def build(self) -> ClientConfig:
        config = ClientConfig(**self._fields)
        config.validate()
        logger.debug(
            "Built config service=%s endpoint='%s' bucket='%s'",
            config.service.value,
            config.endpoint,
            config.bucket,
        )
        return config
