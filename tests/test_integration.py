"""Integration tests against a real MinIO instance."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import pytest
from rangecache import Cache, EndOfData, OAuthToken, RemoteObject, StreamBuffer
from rangecache.remote import S3RemoteClient
from rangecache.settings import CacheSettings

if TYPE_CHECKING:
    from collections.abc import Generator

pytestmark = pytest.mark.integration

REMOTE_BUCKET = "rangecache-remote"
CONTENT = bytes(range(256)) * 40


@pytest.fixture
def s3_cache(minio_service, minio_endpoint) -> Generator[Cache]:
    settings = CacheSettings(
        RANGECACHE_CACHE_ENDPOINT=minio_endpoint,
        RANGECACHE_CACHE_ACCESS_KEY=minio_service.access_key,
        RANGECACHE_CACHE_SECRET_KEY=minio_service.secret_key,
        RANGECACHE_CACHE_BUCKET="rangecache-test",
    )
    cache = Cache.from_settings(settings)
    cache.start()
    yield cache
    cache.close()


@pytest.fixture
def remote_object(s3_client) -> Generator[RemoteObject]:
    with contextlib.suppress(s3_client.exceptions.BucketAlreadyOwnedByYou):
        s3_client.create_bucket(Bucket=REMOTE_BUCKET)
    s3_client.put_object(Bucket=REMOTE_BUCKET, Key="media/file.bin", Body=CONTENT)
    yield RemoteObject(
        object_id="file-1",
        name="file.bin",
        size=len(CONTENT),
        download_url=f"s3://{REMOTE_BUCKET}/media/file.bin",
        parents=("root",),
    )
    with contextlib.suppress(Exception):
        s3_client.delete_object(Bucket=REMOTE_BUCKET, Key="media/file.bin")


class CountingClient(S3RemoteClient):
    def __init__(self, client):
        super().__init__(client)
        self.opens: list[int] = []

    def open(self, obj, offset):
        self.opens.append(offset)
        return super().open(obj, offset)


class TestStreamBufferIntegration:
    def test_read_through_cache(self, s3_cache, s3_client, remote_object):
        """Test reads through a MinIO-backed chunk cache and S3 remote."""
        client = CountingClient(s3_client)
        with StreamBuffer(client, s3_cache.chunks, remote_object) as buffer:
            assert buffer.read(0, 4096) == CONTENT[:4096]
            assert buffer.read(4096, 4096) == CONTENT[4096:8192]
            assert client.opens == [0]

            assert buffer.read(0, 4096) == CONTENT[:4096]
            assert client.opens == [0]

            tail = buffer.read(len(CONTENT) - 5, 10)
            assert tail == CONTENT[-5:]
            assert client.opens == [0, len(CONTENT) - 5]

            with pytest.raises(EndOfData):
                buffer.read(len(CONTENT), 10)

        chunk = s3_cache.chunks.load(f"file-1:{len(CONTENT) - 5}")
        assert chunk is not None
        assert chunk.data == CONTENT[-5:]
        assert chunk.size == 10

    def test_restart_clears_chunks(self, s3_cache, s3_client, remote_object):
        """Test that restarting the cache drops stored chunks."""
        client = S3RemoteClient(s3_client)
        with StreamBuffer(client, s3_cache.chunks, remote_object) as buffer:
            buffer.read(0, 100)
        assert s3_cache.chunks.load("file-1:0") is not None

        s3_cache.start()
        assert s3_cache.chunks.load("file-1:0") is None


class TestObjectStoreIntegration:
    def test_metadata_round_trip(self, s3_cache, remote_object):
        """Test object metadata and page token storage on MinIO."""
        objects = s3_cache.objects
        objects.update_object(remote_object)
        objects.store_start_page_token("42")

        assert objects.get_object("file-1") == remote_object
        found = objects.get_object_by_parent_and_name("root", "file.bin")
        assert found == remote_object
        assert objects.get_start_page_token() == "42"

        objects.delete_object("file-1")
        assert objects.get_objects_by_parent("root") == []

    def test_token_round_trip(self, s3_cache):
        """Test that an OAuth token survives a round trip through MinIO."""
        token = OAuthToken(access_token="access", refresh_token="refresh")
        s3_cache.objects.store_token(token)
        assert s3_cache.objects.load_token() == token
