"""Service-type to adapter selection and the per-provider constructors."""

from __future__ import annotations

import logging
from collections.abc import Callable

from bucketview.constants import DEFAULT_REGION, VIRTUAL_HOST_DOMAINS
from bucketview.core.azblob import AzureBlobOperator
from bucketview.core.config import ClientConfig, ServiceType
from bucketview.core.errors import UnsupportedServiceError
from bucketview.core.operators import Operator, S3Operator

logger = logging.getLogger("bucketview.services")


def uses_virtual_host(config: ClientConfig) -> bool:
    """Explicit flag wins; otherwise match the endpoint host against known domains."""
    if config.virtual_host_style is not None:
        return config.virtual_host_style
    host = config.endpoint_host
    return any(host == d or host.endswith("." + d) for d in VIRTUAL_HOST_DOMAINS)


def _addressing(config: ClientConfig) -> str:
    if config.virtual_host_style is None:
        return "auto"
    return "virtual" if config.virtual_host_style else "path"


def new_s3(config: ClientConfig) -> Operator:
    return S3Operator(config, addressing_style=_addressing(config))


def new_oss(config: ClientConfig) -> Operator:
    # OSS only serves virtual-hosted requests
    return S3Operator(config, addressing_style="virtual", compat_checksums=True)


def new_gcs(config: ClientConfig) -> Operator:
    # XML interoperability API with HMAC keys
    return S3Operator(config, addressing_style="path", compat_checksums=True)


def new_s3_compatible(config: ClientConfig) -> Operator:
    return S3Operator(
        config,
        region=DEFAULT_REGION,
        addressing_style="virtual" if uses_virtual_host(config) else "path",
        compat_checksums=True,
    )


def new_azblob(config: ClientConfig) -> Operator:
    return AzureBlobOperator(config)


_ADAPTERS: dict[ServiceType, Callable[[ClientConfig], Operator]] = {
    ServiceType.S3: new_s3,
    ServiceType.OSS: new_oss,
    ServiceType.GCS: new_gcs,
    ServiceType.AZURE_BLOB: new_azblob,
    ServiceType.S3_COMPATIBLE: new_s3_compatible,
}


def adapter_for(service: ServiceType | str) -> Callable[[ClientConfig], Operator]:
    """Pure lookup; raises UnsupportedServiceError for unknown tags."""
    service = ServiceType.parse(service)
    try:
        return _ADAPTERS[service]
    except KeyError:
        raise UnsupportedServiceError(
            f"Unsupported storage service: {service.value}", service.value
        ) from None


def create(config: ClientConfig) -> Operator:
    """Validate *config* and build the adapter for its service. Raises ConfigError."""
    config.validate()
    constructor = adapter_for(config.service)
    logger.debug("Creating operator service=%s bucket='%s'", config.service.value, config.bucket)
    return constructor(config)
