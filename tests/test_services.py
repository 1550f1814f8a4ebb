"""Tests for adapter selection and per-provider construction."""

import pytest

from bucketview.core import services
from bucketview.core.azblob import AzureBlobOperator
from bucketview.core.config import ClientConfig, ServiceType
from bucketview.core.errors import ConfigError, UnsupportedServiceError
from bucketview.core.operators import S3Operator


def _config(service: str, endpoint: str = "https://s3.example.com", **kw) -> ClientConfig:
    b = (
        ClientConfig.builder()
        .service(service)
        .endpoint(endpoint)
        .access_key(kw.get("key", "AKID"))
        .access_secret(kw.get("secret", "SECRET"))
        .bucket(kw.get("bucket", "my-bucket"))
        .region(kw.get("region", "eu-central-1"))
    )
    if "virtual_host_style" in kw:
        b.virtual_host_style(kw["virtual_host_style"])
    return b.build()


class TestAdapterFor:
    def test_every_service_has_an_adapter(self):
        for service in ServiceType:
            assert callable(services.adapter_for(service))

    def test_tag_strings(self):
        assert services.adapter_for("azblob") is services.new_azblob
        assert services.adapter_for("s3") is services.new_s3
        assert services.adapter_for("oss") is services.new_oss

    def test_unknown_service(self):
        with pytest.raises(UnsupportedServiceError):
            services.adapter_for("webdav")


class TestCreate:
    def test_s3_without_endpoint(self):
        config = ClientConfig(
            service=ServiceType.S3, access_key_id="k", access_key_secret="s", bucket="my-bucket"
        )
        op = services.create(config)
        assert isinstance(op, S3Operator)
        assert op.bucket == "my-bucket"
        assert op.bucket_url() == "https://my-bucket.s3.us-east-1.amazonaws.com"

    def test_rejects_invalid_config(self):
        config = ClientConfig(
            service=ServiceType.OSS, access_key_id="k", access_key_secret="s", bucket="my-bucket"
        )
        with pytest.raises(ConfigError):
            services.create(config)

    def test_rejects_invalid_bucket(self):
        config = ClientConfig(
            service=ServiceType.S3, access_key_id="k", access_key_secret="s", bucket="UPPER"
        )
        with pytest.raises(ConfigError):
            services.create(config)

    def test_azure(self):
        op = services.create(_config("azblob", "https://acct.blob.core.windows.net", key="acct"))
        assert isinstance(op, AzureBlobOperator)
        assert op.bucket_url() == "https://acct.blob.core.windows.net/my-bucket"


class TestAddressing:
    def test_s3_compatible_pins_region(self):
        op = services.create(_config("s3_compatible"))
        assert op.region == "us-east-1"
        assert op._client.meta.region_name == "us-east-1"

    def test_s3_compatible_path_style_by_default(self):
        op = services.create(_config("s3_compatible", "http://localhost:9000"))
        assert op.addressing_style == "path"
        assert op._client.meta.config.s3["addressing_style"] == "path"
        assert op.bucket_url() == "http://localhost:9000/my-bucket"

    def test_virtual_host_detected_from_domain(self):
        op = services.create(_config("s3_compatible", "https://oss-cn-hangzhou.aliyuncs.com"))
        assert op.addressing_style == "virtual"
        assert op.bucket_url() == "https://my-bucket.oss-cn-hangzhou.aliyuncs.com"

    def test_explicit_flag_wins(self):
        op = services.create(
            _config("s3_compatible", "https://oss-cn-hangzhou.aliyuncs.com", virtual_host_style=False)
        )
        assert op.addressing_style == "path"

    def test_oss_always_virtual(self):
        op = services.create(
            _config("oss", "https://oss-cn-hangzhou.aliyuncs.com", virtual_host_style=False)
        )
        assert op.addressing_style == "virtual"

    def test_gcs_uses_path_style(self):
        op = services.create(_config("gcs", "https://storage.googleapis.com"))
        assert op.addressing_style == "path"
        assert op._client.meta.endpoint_url == "https://storage.googleapis.com"

    def test_explicit_credentials_and_timeouts(self):
        op = services.create(_config("s3_compatible"))
        creds = op._client._request_signer._credentials
        assert creds.access_key == "AKID"
        assert creds.secret_key == "SECRET"
        assert op._client.meta.config.connect_timeout == 60.0
        assert op._client.meta.config.retries["total_max_attempts"] == 1


class TestUsesVirtualHost:
    def test_subdomain_match_only(self):
        assert services.uses_virtual_host(_config("s3_compatible", "https://oss.aliyuncs.com"))
        assert not services.uses_virtual_host(
            _config("s3_compatible", "https://notaliyuncs.com")
        )
