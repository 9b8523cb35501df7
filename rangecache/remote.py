"""Clients that open byte streams on remote objects at a given offset."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlsplit

import httpx
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import RemoteError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .models import OAuthToken, RemoteObject
    from .settings import RemoteSettings

LOG = logging.getLogger("rangecache.remote")


class ByteStream(Protocol):
    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...


class RemoteObjectClient(Protocol):
    def open(self, obj: RemoteObject, offset: int) -> ByteStream:
        """Return a stream whose next read yields the byte at ``offset``."""
        ...

    def close(self) -> None: ...


class HttpByteStream:
    """Blocking ``read(n)`` on top of a streamed httpx response."""

    def __init__(self, response: httpx.Response, chunk_size: int = 64 * 1024):
        self._response = response
        self._chunks: Iterator[bytes] = response.iter_bytes(chunk_size)
        self._pending = b""

    def read(self, size: int = -1, /) -> bytes:
        parts = [self._pending]
        available = len(self._pending)
        try:
            while size < 0 or available < size:
                chunk = next(self._chunks, b"")
                if not chunk:
                    break
                parts.append(chunk)
                available += len(chunk)
        except httpx.HTTPError as error:
            msg = f"could not read from {self._response.url}"
            raise RemoteError(msg) from error

        data = b"".join(parts)
        if size < 0:
            self._pending = b""
            return data
        self._pending = data[size:]
        return data[:size]

    def close(self) -> None:
        self._response.close()


class HttpRemoteClient:
    """Opens ranged GET requests against ``RemoteObject.download_url``.

    A token configured on the httpx client (``RANGECACHE_REMOTE_ACCESS_TOKEN``)
    wins over a token loaded from the cache with ``use_token``.
    """

    def __init__(self, http_client: httpx.Client, token: OAuthToken | None = None):
        self._http_client = http_client
        self._token = token

    def use_token(self, token: OAuthToken) -> None:
        self._token = token

    @classmethod
    def from_settings(cls, settings: RemoteSettings) -> HttpRemoteClient:
        headers = {}
        if settings.access_token:
            headers["Authorization"] = f"Bearer {settings.access_token}"
        return cls(
            httpx.Client(
                headers=headers,
                timeout=httpx.Timeout(settings.timeout, read=settings.read_timeout),
                follow_redirects=True,
            )
        )

    def open(self, obj: RemoteObject, offset: int) -> HttpByteStream:
        if not obj.download_url:
            msg = f"object {obj.object_id} has no download url"
            raise RemoteError(msg)

        headers = {"Range": f"bytes={offset}-"}
        configured = "authorization" in self._http_client.headers
        if self._token is not None and not configured:
            headers["Authorization"] = self._token.authorization
        request = self._http_client.build_request(
            "GET", obj.download_url, headers=headers
        )
        try:
            response = self._http_client.send(request, stream=True)
        except httpx.HTTPError as error:
            msg = f"could not request {obj.download_url}"
            raise RemoteError(msg) from error

        # A plain 200 means the server ignored the Range header.
        expected = {206} if offset > 0 else {200, 206}
        if response.status_code not in expected:
            response.close()
            msg = (
                f"unexpected status {response.status_code} for "
                f"{obj.object_id} at offset {offset}"
            )
            raise RemoteError(msg)
        LOG.debug("opened %s at offset %d", obj.download_url, offset)
        return HttpByteStream(response)

    def close(self) -> None:
        self._http_client.close()


class S3ByteStream:
    def __init__(self, body: Any):
        self._body = body

    def read(self, size: int = -1, /) -> bytes:
        try:
            return self._body.read(None if size < 0 else size)
        except (BotoCoreError, OSError) as error:
            msg = "could not read remote object body"
            raise RemoteError(msg) from error

    def close(self) -> None:
        self._body.close()


def parse_s3_url(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    key = parts.path.lstrip("/")
    if parts.scheme != "s3" or not parts.netloc or not key:
        msg = f"not an s3://bucket/key url: {url!r}"
        raise ValueError(msg)
    return parts.netloc, key


class S3RemoteClient:
    """Opens ranged ``GetObject`` calls for objects located by ``s3://`` urls."""

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_settings(cls, settings: RemoteSettings) -> S3RemoteClient:
        session = Session(
            aws_access_key_id=settings.access_key,
            aws_secret_access_key=settings.secret_key,
            aws_session_token=settings.session_token,
            region_name=settings.region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3},
                connect_timeout=settings.timeout,
                read_timeout=settings.read_timeout,
                s3={"addressing_style": settings.addressing_style},
            ),
        )
        return cls(client)

    def open(self, obj: RemoteObject, offset: int) -> S3ByteStream:
        try:
            bucket, key = parse_s3_url(obj.download_url)
        except ValueError as error:
            raise RemoteError(str(error)) from error

        try:
            result = self._client.get_object(
                Bucket=bucket, Key=key, Range=f"bytes={offset}-"
            )
        except (ClientError, BotoCoreError) as error:
            msg = f"could not open s3://{bucket}/{key} at offset {offset}"
            raise RemoteError(msg) from error
        LOG.debug("opened s3://%s/%s at offset %d", bucket, key, offset)
        return S3ByteStream(result["Body"])

    def close(self) -> None:
        self._client.close()


def build_remote_client(settings: RemoteSettings) -> RemoteObjectClient:
    if settings.provider == "s3":
        return S3RemoteClient.from_settings(settings)
    return HttpRemoteClient.from_settings(settings)
