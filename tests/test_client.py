"""Tests for the client facade against moto S3 and an in-memory operator."""

from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from botocore.exceptions import ClientError

from bucketview.core.client import Client, upload_key
from bucketview.core.errors import (
    MoveIncompleteError,
    NotFoundError,
    PartialBatchFailure,
    PermissionDeniedError,
    PresignError,
    StorageError,
    TransportError,
)
from bucketview.core.listing import ListOptions, build_list_options
from bucketview.models.objects import BucketAcl


def _no_such_key(key: str) -> ClientError:
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": key}}, "CopyObject")


class TestMetaAndGet:
    def test_meta(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="a.txt", Body=b"hello", ContentType="text/plain")
        meta = client.meta("a.txt")
        assert meta.key == "a.txt"
        assert meta.size == 5
        assert meta.content_type == "text/plain"
        assert meta.etag

    def test_meta_missing(self, s3_env):
        client, _raw = s3_env
        with pytest.raises(NotFoundError):
            client.meta("missing.txt")

    def test_get_and_range(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="r.bin", Body=b"0123456789")
        assert client.get("r.bin") == b"0123456789"
        assert client.get_range("r.bin", 2, 5) == b"234"

    def test_head_returns_first_bytes(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="img.png", Body=b"\x89PNG" + b"\0" * 1000)
        meta, head = client.head("img.png")
        assert meta.size == 1004
        assert len(head) == 256
        assert head.startswith(b"\x89PNG")

    def test_head_of_empty_object(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="empty", Body=b"")
        meta, head = client.head("empty")
        assert meta.size == 0
        assert head == b""


class TestList:
    def test_folders_and_files(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="photos/a.png", Body=b"a")
        raw.put_object(Bucket="test-bucket", Key="photos/2023/x.png", Body=b"x")
        raw.put_object(Bucket="test-bucket", Key="photos/", Body=b"")

        page = client.list(build_list_options("photos"))
        assert [o.key for o in page.common_prefixes] == ["photos/2023/"]
        assert [o.key for o in page.objects] == ["photos/a.png"]
        assert page.next_continuation_token is None
        assert page.common_prefixes[0].is_folder

    def test_pagination_with_continuation_token(self, s3_env):
        client, raw = s3_env
        for i in range(5):
            raw.put_object(Bucket="test-bucket", Key=f"k{i}", Body=b"x")

        opts = ListOptions(prefix="", max_keys=2)
        keys = []
        pages = 0
        while True:
            page = client.list(opts)
            pages += 1
            keys.extend(o.key for o in page.objects)
            if page.next_continuation_token is None:
                break
            assert page.is_truncated
            opts = opts.next_page(page.next_continuation_token)
        assert keys == [f"k{i}" for i in range(5)]
        assert pages == 3

    def test_relisting_is_idempotent(self, s3_env):
        client, raw = s3_env
        for key in ("d/a", "d/b", "d/sub/c", "e"):
            raw.put_object(Bucket="test-bucket", Key=key, Body=b"x")
        opts = ListOptions(prefix="d/", max_keys=10)
        first = client.list(opts)
        second = client.list(opts)
        assert first == second

    def test_missing_bucket(self, s3_config):
        from moto import mock_aws

        with mock_aws():
            client = Client(s3_config)
            with pytest.raises(NotFoundError):
                client.list(ListOptions())


class TestWrites:
    def test_create_folder(self, s3_env):
        client, raw = s3_env
        key = client.create_folder("photos/new")
        assert key == "photos/new/"
        obj = raw.get_object(Bucket="test-bucket", Key="photos/new/")
        assert obj["ContentLength"] == 0

    def test_create_folder_rejects_empty(self, memory_client):
        with pytest.raises(StorageError):
            memory_client.create_folder("/")

    def test_delete(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="bye.txt", Body=b"x")
        client.delete("bye.txt")
        assert raw.list_objects_v2(Bucket="test-bucket").get("KeyCount", 0) == 0

    def test_delete_many(self, s3_env):
        client, raw = s3_env
        for i in range(3):
            raw.put_object(Bucket="test-bucket", Key=f"d{i}", Body=b"x")
        client.delete_many(["d0", "d1", "d2"])
        assert raw.list_objects_v2(Bucket="test-bucket").get("KeyCount", 0) == 0

    def test_delete_many_partial_failure(self, memory_client, memory_op, monkeypatch):
        err = PermissionDeniedError("Access denied.", "403")
        monkeypatch.setattr(memory_op, "delete_many", lambda keys: [("b", err)])
        with pytest.raises(PartialBatchFailure) as exc_info:
            memory_client.delete_many(["a", "b", "c"])
        assert exc_info.value.failures == [("b", err)]
        assert "1 of 3" in exc_info.value.user_message

    def test_delete_many_empty_is_noop(self, memory_client, memory_op):
        memory_client.delete_many([])
        assert memory_op.calls == []

    def test_copy(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="src.txt", Body=b"copy me")
        assert client.copy("src.txt", "dst.txt") == ("src.txt", False)
        assert raw.get_object(Bucket="test-bucket", Key="dst.txt")["Body"].read() == b"copy me"
        assert raw.get_object(Bucket="test-bucket", Key="src.txt")["Body"].read() == b"copy me"

    def test_copy_passes_move_flag_back(self, memory_client, memory_op):
        memory_op.objects["a"] = b"1"
        assert memory_client.copy("a", "b", is_move=True) == ("a", True)
        assert "a" in memory_op.objects


class TestMove:
    def test_move(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="old.txt", Body=b"data")
        client.move("old.txt", "new.txt")
        keys = [o["Key"] for o in raw.list_objects_v2(Bucket="test-bucket")["Contents"]]
        assert keys == ["new.txt"]

    def test_copy_failure_never_deletes(self, memory_client, memory_op):
        memory_op.objects["src"] = b"x"
        memory_op.failures["copy"] = _no_such_key("src")
        with pytest.raises(NotFoundError):
            memory_client.move("src", "dest")
        assert "delete" not in memory_op.call_names()
        assert memory_op.objects == {"src": b"x"}

    def test_copy_completes_before_delete(self, memory_client, memory_op):
        memory_op.objects["src"] = b"x"
        memory_client.move("src", "dest")
        names = memory_op.call_names()
        assert names.index("copy") < names.index("delete")
        assert memory_op.objects == {"dest": b"x"}

    def test_delete_failure_reports_incomplete_move(self, memory_client, memory_op):
        memory_op.objects["src"] = b"x"
        memory_op.failures["delete"] = ConnectionResetError("reset")
        with pytest.raises(MoveIncompleteError) as exc_info:
            memory_client.move("src", "dest")
        assert exc_info.value.src == "src"
        assert exc_info.value.dest == "dest"
        assert isinstance(exc_info.value.cause, TransportError)
        assert set(memory_op.objects) == {"src", "dest"}


class TestPresign:
    def test_presigned_url(self, s3_env):
        client, raw = s3_env
        raw.put_object(Bucket="test-bucket", Key="share.txt", Body=b"x")
        url = client.presign("share.txt", 600)
        parsed = urlparse(url)
        assert parsed.path.endswith("share.txt")
        assert parse_qs(parsed.query)["X-Amz-Expires"] == ["600"]

    @pytest.mark.parametrize("ttl", [0, -5, 604801, 1.5, True, "3600"])
    def test_rejects_bad_ttl(self, memory_client, memory_op, ttl):
        with pytest.raises(PresignError):
            memory_client.presign("k", ttl)
        assert "presign" not in memory_op.call_names()

    def test_max_ttl_accepted(self, memory_client):
        assert "X-Expires=604800" in memory_client.presign("k", 604800)

    def test_sdk_failure_becomes_presign_error(self, memory_client, memory_op):
        memory_op.failures["presign"] = ValueError("cannot sign")
        with pytest.raises(PresignError):
            memory_client.presign("k", 60)


class TestBucketInfo:
    def test_private_by_default(self, s3_env):
        client, _raw = s3_env
        info = client.bucket_info()
        assert info.name == "test-bucket"
        assert info.acl is BucketAcl.PRIVATE
        assert client.is_private()

    def test_public_read(self, s3_env):
        client, raw = s3_env
        raw.put_bucket_acl(Bucket="test-bucket", ACL="public-read")
        assert client.bucket_info().acl is BucketAcl.PUBLIC_READ
        assert not client.is_private()

    def test_unreadable_acl_assumed_private(self, memory_client, memory_op):
        memory_op.failures["bucket_info"] = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetBucketAcl"
        )
        assert memory_client.bucket_info().acl is BucketAcl.PRIVATE

    def test_other_failures_propagate(self, memory_client, memory_op):
        memory_op.failures["bucket_info"] = ConnectionResetError("reset")
        with pytest.raises(TransportError):
            memory_client.bucket_info()


class TestTransfers:
    def test_upload_key(self):
        assert upload_key("/tmp/a.txt", "") == "a.txt"
        assert upload_key("/tmp/a.txt", "docs") == "docs/a.txt"
        assert upload_key(Path("/tmp/a.txt"), "docs/") == "docs/a.txt"

    def test_upload_and_download_round_trip(self, s3_env, tmp_path: Path):
        client, raw = s3_env
        src = tmp_path / "report.csv"
        src.write_bytes(b"a,b\n1,2\n" * 1000)
        events = []

        key = client.upload(src, "reports", events.append, buffer_size=4096)
        assert key == "reports/report.csv"
        head = raw.head_object(Bucket="test-bucket", Key=key)
        assert head["ContentLength"] == 8000
        assert head["ContentType"] == "text/csv"
        assert len(events) == 2

        dest = tmp_path / "out" / "report.csv"
        assert client.download(key, dest, buffer_size=4096) == 8000
        assert dest.read_bytes() == src.read_bytes()

    def test_multipart_upload(self, s3_env, tmp_path: Path):
        client, raw = s3_env
        src = tmp_path / "big.bin"
        src.write_bytes(b"z" * (6 * 1024 * 1024))
        client.upload(src, "", buffer_size=1024 * 1024)
        assert raw.head_object(Bucket="test-bucket", Key="big.bin")["ContentLength"] == 6 * 1024 * 1024
        assert raw.list_multipart_uploads(Bucket="test-bucket").get("Uploads", []) == []

    def test_download_missing(self, s3_env, tmp_path: Path):
        client, _raw = s3_env
        with pytest.raises(NotFoundError):
            client.download("nope", tmp_path / "nope")

    def test_upload_many_reports_each_path(self, memory_client, memory_op, tmp_path: Path):
        good = tmp_path / "good.txt"
        good.write_text("ok")
        results = memory_client.upload_many([good, tmp_path / "missing.txt"], "in")
        assert results[0] == ("in/good.txt", None)
        key, err = results[1]
        assert key == "in/missing.txt"
        assert isinstance(err, StorageError)
        assert memory_op.objects["in/good.txt"] == b"ok"


class TestConstruction:
    def test_invalid_config_raises_config_error(self):
        from bucketview.core.config import ClientConfig, ServiceType
        from bucketview.core.errors import ConfigError

        config = ClientConfig(
            service=ServiceType.GCS, access_key_id="k", access_key_secret="s", bucket="b"
        )
        with pytest.raises(ConfigError):
            Client(config)

    def test_bucket_url(self, memory_client):
        assert memory_client.bucket_url() == "https://test-bucket.example.com"

    def test_injected_operator(self, memory_client, memory_op):
        assert memory_client.operator is memory_op
        assert memory_client.bucket == "test-bucket"
