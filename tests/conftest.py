from __future__ import annotations

import io
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest
from rangecache import Cache, ChunkStore, RemoteObject
from rangecache.backend import StoredItem
from rangecache.errors import BackendError, RemoteError

if TYPE_CHECKING:
    from collections.abc import Generator, Iterator, Mapping

    from botocore.client import BaseClient
    from pytest_databases._service import DockerService


def pytest_collection_modifyitems(config, items):
    if os.getenv("RANGECACHE_INTEGRATION", "").lower() in {"1", "true", "yes"}:
        return
    skip = pytest.mark.skip(reason="set RANGECACHE_INTEGRATION=1 to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


class MemoryBackend:
    """Dict-backed StorageBackend with switchable failures."""

    def __init__(self):
        self.items: dict[str, StoredItem] = {}
        self.fail_get = False
        self.fail_put = False
        self.fail_delete = False
        self.closed = False
        self.setup_calls = 0
        self.get_calls = 0

    def setup(self) -> None:
        self.setup_calls += 1

    def get(self, key: str) -> StoredItem | None:
        self.get_calls += 1
        if self.fail_get:
            msg = f"get {key} failed"
            raise BackendError(msg)
        return self.items.get(key)

    def put(
        self, key: str, body: bytes, metadata: Mapping[str, str] | None = None
    ) -> None:
        if self.fail_put:
            msg = f"put {key} failed"
            raise BackendError(msg)
        self.items[key] = StoredItem(bytes(body), dict(metadata or {}))

    def delete(self, key: str) -> None:
        if self.fail_delete:
            msg = f"delete {key} failed"
            raise BackendError(msg)
        self.items.pop(key, None)

    def list_keys(self, prefix: str) -> Iterator[str]:
        return iter(sorted(k for k in self.items if k.startswith(prefix)))

    def delete_prefix(self, prefix: str) -> int:
        if self.fail_delete:
            msg = f"delete {prefix} failed"
            raise BackendError(msg)
        keys = list(self.list_keys(prefix))
        for key in keys:
            del self.items[key]
        return len(keys)

    def close(self) -> None:
        self.closed = True


class FakeStream:
    def __init__(self, data: bytes, offset: int, max_read: int | None = None):
        self._io = io.BytesIO(data)
        self._io.seek(offset)
        self._max_read = max_read
        self.closed = False
        self.fail_read = False
        self.fail_close = False

    def read(self, size: int = -1, /) -> bytes:
        if self.fail_read:
            msg = "connection reset"
            raise RemoteError(msg)
        if self._max_read is not None and (size < 0 or size > self._max_read):
            size = self._max_read
        return self._io.read(size)

    def close(self) -> None:
        self.closed = True
        if self.fail_close:
            msg = "close failed"
            raise OSError(msg)


@dataclass
class FakeRemoteClient:
    """Serves object payloads from memory and records every open."""

    payloads: dict[str, bytes] = field(default_factory=dict)
    max_read: int | None = None
    fail_open: bool = False
    opens: list[tuple[str, int]] = field(default_factory=list)
    streams: list[FakeStream] = field(default_factory=list)
    closed: bool = False

    def open(self, obj: RemoteObject, offset: int) -> FakeStream:
        self.opens.append((obj.object_id, offset))
        if self.fail_open:
            msg = f"could not open {obj.object_id}"
            raise RemoteError(msg)
        stream = FakeStream(self.payloads[obj.object_id], offset, self.max_read)
        self.streams.append(stream)
        return stream

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def payload() -> bytes:
    return bytes(range(100))


@pytest.fixture
def remote_object(payload: bytes) -> RemoteObject:
    return RemoteObject(
        object_id="obj-1",
        name="movie.mkv",
        size=len(payload),
        download_url="https://files.example.com/obj-1",
        parents=("root",),
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def chunk_store(backend: MemoryBackend) -> ChunkStore:
    return ChunkStore(backend)


@pytest.fixture
def cache(backend: MemoryBackend) -> Cache:
    return Cache(backend)


@pytest.fixture
def remote_client(remote_object: RemoteObject, payload: bytes) -> FakeRemoteClient:
    return FakeRemoteClient(payloads={remote_object.object_id: payload})


@dataclass
class MinioService:
    endpoint: str
    access_key: str
    secret_key: str
    secure: bool


@pytest.fixture(scope="session")
def minio_access_key() -> str:
    return os.getenv("MINIO_ACCESS_KEY", "minio")


@pytest.fixture(scope="session")
def minio_secret_key() -> str:
    return os.getenv("MINIO_SECRET_KEY", "minio123")


@pytest.fixture(scope="session")
def minio_secure() -> bool:
    return os.getenv("MINIO_SECURE", "false").lower() in {
        "true",
        "1",
        "yes",
        "y",
        "t",
        "on",
    }


@pytest.fixture(scope="session")
def minio_service_name() -> str:
    return "rangecache-minio"


@pytest.fixture(scope="session")
def minio_service(
    docker_service: DockerService,
    minio_access_key: str,
    minio_secret_key: str,
    minio_secure: bool,
    minio_service_name: str,
) -> Generator[MinioService]:
    from urllib.error import URLError
    from urllib.request import Request, urlopen

    from pytest_databases.types import ServiceContainer

    def check(_service: ServiceContainer) -> bool:
        scheme = "https" if minio_secure else "http"
        url = f"{scheme}://{_service.host}:{_service.port}/minio/health/ready"
        try:
            with urlopen(url=Request(url, method="GET"), timeout=10) as response:
                return response.status == 200
        except (URLError, ConnectionError):
            return False

    env = {
        "MINIO_ROOT_USER": minio_access_key,
        "MINIO_ROOT_PASSWORD": minio_secret_key,
    }

    with docker_service.run(
        image="quay.io/minio/minio",
        name=minio_service_name,
        command="server /data",
        container_port=9000,
        timeout=20,
        pause=0.5,
        env=env,
        check=check,
    ) as service:
        yield MinioService(
            endpoint=f"{service.host}:{service.port}",
            access_key=minio_access_key,
            secret_key=minio_secret_key,
            secure=minio_secure,
        )


@pytest.fixture
def minio_endpoint(minio_service: MinioService) -> str:
    scheme = "https" if minio_service.secure else "http"
    return f"{scheme}://{minio_service.endpoint}"


@pytest.fixture
def s3_client(minio_service: MinioService, minio_endpoint: str) -> BaseClient:
    """Create a boto3 S3 client for the MinIO service."""
    import boto3
    from botocore.config import Config

    return boto3.client(
        "s3",
        endpoint_url=minio_endpoint,
        aws_access_key_id=minio_service.access_key,
        aws_secret_access_key=minio_service.secret_key,
        region_name="us-east-1",
        config=Config(s3={"addressing_style": "path"}),
    )
