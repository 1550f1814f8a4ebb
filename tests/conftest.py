import gc
import io
import os
from collections import deque
from pathlib import Path

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from bucketview.core.client import Client
from bucketview.core.config import ClientConfig
from bucketview.models.objects import BucketInfo, ListingPage, Metadata, StorageObject


def pytest_configure(config):
    """Work around PyQt6 SIGABRT crashes in the test suite.

    PyQt6's QThread destructor calls abort() when destroyed in a problematic
    state. The cyclic GC can destroy pool threads at unpredictable times via
    reference chains (exception -> traceback -> frame -> QRunnable), so it is
    disabled; objects are still freed via refcount. pytest-qt's hook-level
    event processing is replaced with a no-op for the same reason, leaving
    test-level ``qtbot.waitSignal``/``waitUntil`` fully functional.
    """
    gc.disable()

    try:
        from PyQt6 import sip

        sip.setdestroyonexit(False)
    except (ImportError, AttributeError):
        pass

    try:
        import pytestqt.plugin

        pytestqt.plugin._process_events = lambda: None
    except ImportError:
        pass


def pytest_sessionfinish(session, exitstatus):
    """Force-exit to avoid PyQt6 cleanup crash at interpreter shutdown."""
    os._exit(exitstatus)


@pytest.fixture(autouse=True)
def mock_keyring(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Mock the keyring module with a simple dict backend."""
    store: dict[str, str] = {}

    def get_password(service: str, key: str) -> str | None:
        return store.get(f"{service}:{key}")

    def set_password(service: str, key: str, value: str) -> None:
        store[f"{service}:{key}"] = value

    def delete_password(service: str, key: str) -> None:
        store.pop(f"{service}:{key}", None)

    monkeypatch.setattr("keyring.get_password", get_password)
    monkeypatch.setattr("keyring.set_password", set_password)
    monkeypatch.setattr("keyring.delete_password", delete_password)
    return store


@pytest.fixture(autouse=True)
def _no_real_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent tests from writing to the real ~/.bucketview directory."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr("bucketview.constants.APP_DIR", tmp_path / ".bucketview")
    monkeypatch.setattr("bucketview.constants.DB_PATH", tmp_path / ".bucketview" / "bucketview.db")
    monkeypatch.setattr("bucketview.constants.LOG_DIR", tmp_path / ".bucketview" / "logs")
    monkeypatch.setattr(
        "bucketview.constants.LOG_FILE", tmp_path / ".bucketview" / "logs" / "bucketview.log"
    )


@pytest.fixture
def s3_config() -> ClientConfig:
    return (
        ClientConfig.builder()
        .service("s3")
        .access_key("testing")
        .access_secret("testing")
        .bucket("test-bucket")
        .region("us-east-1")
        .build()
    )


@pytest.fixture
def s3_env(s3_config):
    """Mocked S3 with an empty ``test-bucket``; yields (client, raw boto3 client)."""
    with mock_aws():
        raw = boto3.client("s3", region_name="us-east-1")
        raw.create_bucket(Bucket="test-bucket")
        yield Client(s3_config), raw


class InlineSpawner:
    """Runs each task synchronously inside ``spawn``."""

    def __init__(self) -> None:
        self.names: list[str] = []

    def spawn(self, fn, on_done=None, name=""):
        self.names.append(name)
        self._run(fn, on_done)
        return True

    @staticmethod
    def _run(fn, on_done):
        result, error = None, None
        try:
            result = fn()
        except Exception as e:
            error = e
        if on_done is not None:
            on_done(result, error)

    def shutdown(self, grace=0.0):
        return True


class ManualSpawner(InlineSpawner):
    """Queues tasks until ``run_next``/``run_all`` so tests control completion order."""

    def __init__(self) -> None:
        super().__init__()
        self.pending: deque = deque()

    def spawn(self, fn, on_done=None, name=""):
        self.names.append(name)
        self.pending.append((fn, on_done))
        return True

    def run_next(self) -> None:
        fn, on_done = self.pending.popleft()
        self._run(fn, on_done)

    def run_all(self) -> None:
        while self.pending:
            self.run_next()


@pytest.fixture
def inline_spawner() -> InlineSpawner:
    return InlineSpawner()


@pytest.fixture
def manual_spawner() -> ManualSpawner:
    return ManualSpawner()


class MemoryWriter:
    def __init__(self, op: "MemoryOperator", key: str, fail_after: int | None = None) -> None:
        self._op = op
        self._key = key
        self._fail_after = fail_after
        self.data = bytearray()
        self.closed = False
        self.aborted = False

    def write(self, data) -> None:
        self.data += data
        if self._fail_after is not None and len(self.data) > self._fail_after:
            raise ConnectionError("connection reset by peer")

    def close(self) -> None:
        self._op.objects[self._key] = bytes(self.data)
        self.closed = True

    def abort(self) -> None:
        self.aborted = True


class MemoryOperator:
    """In-memory operator with call recording and injectable failures.

    ``failures`` maps an operation name to the exception it raises.
    ``pages`` scripts the listing: page *i* answers continuation token
    ``str(i)`` (the first page answers no token).
    """

    def __init__(self, bucket: str = "test-bucket") -> None:
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.pages: list | None = None
        self.writers: list[MemoryWriter] = []
        self.writer_fail_after: int | None = None

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def stat(self, key):
        self._call("stat", key)
        if key not in self.objects:
            raise _no_such_key(key)
        return Metadata(key=key, size=len(self.objects[key]))

    def read(self, key, byte_range=None):
        self._call("read", key, byte_range)
        if key not in self.objects:
            raise _no_such_key(key)
        data = self.objects[key]
        if byte_range is not None:
            data = data[byte_range[0] : byte_range[1]]
        return data

    def open_reader(self, key):
        self._call("open_reader", key)
        if key not in self.objects:
            raise _no_such_key(key)
        return io.BytesIO(self.objects[key])

    def write(self, key, data, content_type=None):
        self._call("write", key)
        self.objects[key] = bytes(data)

    def open_writer(self, key, content_type=None):
        self._call("open_writer", key)
        writer = MemoryWriter(self, key, self.writer_fail_after)
        self.writers.append(writer)
        return writer

    def delete(self, key):
        self._call("delete", key)
        self.objects.pop(key, None)

    def delete_many(self, keys):
        self._call("delete_many", tuple(keys))
        for key in keys:
            self.objects.pop(key, None)
        return []

    def copy(self, src_key, dest_key):
        self._call("copy", src_key, dest_key)
        if src_key not in self.objects:
            raise _no_such_key(src_key)
        self.objects[dest_key] = self.objects[src_key]

    def list(self, options):
        self._call("list", options)
        if self.pages is not None:
            index = int(options.continuation_token or 0)
            return self.pages[index]
        folders: dict[str, None] = {}
        files = []
        for key in sorted(self.objects):
            if not key.startswith(options.prefix):
                continue
            rest = key[len(options.prefix) :]
            if options.delimiter and options.delimiter in rest:
                folder = options.prefix + rest.split(options.delimiter)[0] + options.delimiter
                folders.setdefault(folder)
            elif not (options.delimiter and key.endswith(options.delimiter)):
                files.append(StorageObject(key=key, size=len(self.objects[key])))
        return ListingPage(
            prefix=options.prefix,
            delimiter=options.delimiter,
            max_keys=options.max_keys,
            objects=files,
            common_prefixes=[StorageObject.folder(f) for f in folders],
        )

    def presign(self, key, ttl_seconds):
        self._call("presign", key, ttl_seconds)
        return f"https://{self.bucket}.example.com/{key}?X-Expires={ttl_seconds}"

    def bucket_info(self):
        self._call("bucket_info")
        return BucketInfo(name=self.bucket)

    def bucket_url(self):
        return f"https://{self.bucket}.example.com"


def _no_such_key(key: str) -> ClientError:
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": key}}, "GetObject")


@pytest.fixture
def memory_op() -> MemoryOperator:
    return MemoryOperator()


@pytest.fixture
def memory_client(s3_config, memory_op) -> Client:
    return Client(s3_config, operator=memory_op)
