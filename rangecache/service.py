from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any

import anyio
from anyio import to_thread

from .buffer import StreamBuffer
from .cache import Cache
from .errors import StreamCloseError
from .remote import HttpRemoteClient, build_remote_client
from .settings import (
    ServiceSettings,
    load_cache_settings_from_env,
    load_remote_settings_from_env,
    load_service_settings_from_env,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import RemoteObject
    from .remote import RemoteObjectClient

LOG = logging.getLogger("rangecache.service")


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(partial(func, *args, **kwargs))


class HandleNotFound(LookupError):
    def __init__(self, handle_id: str):
        super().__init__(f"unknown handle {handle_id}")
        self.handle_id = handle_id


@dataclass
class _Handle:
    buffer: StreamBuffer
    lock: anyio.Lock = field(default_factory=anyio.Lock)


class StreamService:
    """Maps open file handles to their ``StreamBuffer`` sessions.

    Reads on one handle are serialized; reads on different handles run
    concurrently in worker threads.
    """

    def __init__(
        self,
        cache: Cache,
        client: RemoteObjectClient,
        settings: ServiceSettings | None = None,
    ):
        self._cache = cache
        self._client = client
        self._settings = settings or ServiceSettings()
        self._handles: dict[str, _Handle] = {}

    @classmethod
    def from_env(cls) -> StreamService:
        """Create a StreamService from environment variables."""
        return cls(
            cache=Cache.from_settings(load_cache_settings_from_env()),
            client=build_remote_client(load_remote_settings_from_env()),
            settings=load_service_settings_from_env(),
        )

    @property
    def max_read_size(self) -> int:
        return self._settings.max_read_size

    async def startup(self) -> None:
        await _run_sync(self._cache.start)
        if isinstance(self._client, HttpRemoteClient):
            token = await _run_sync(self._cache.objects.load_token)
            if token is not None:
                LOG.debug("using token stored in cache")
                self._client.use_token(token)
        LOG.info("rangecache ready (max_read_size=%d)", self.max_read_size)

    async def shutdown(self) -> None:
        handles = list(self._handles)
        for handle_id in handles:
            await self.close(handle_id)
        await _run_sync(self._client.close)
        await _run_sync(self._cache.close)
        LOG.info("rangecache shut down (%d handles closed)", len(handles))

    async def open(self, object_id: str) -> tuple[str, RemoteObject]:
        """Open a read session on ``object_id``.

        Raises:
            ObjectNotFound: if the object is not in the metadata store.
        """
        obj = await _run_sync(self._cache.objects.get_object, object_id)
        buffer = StreamBuffer(self._client, self._cache.chunks, obj)
        handle_id = uuid.uuid4().hex
        self._handles[handle_id] = _Handle(buffer)
        LOG.debug("opened handle %s for %s", handle_id, buffer.session_id)
        return handle_id, obj

    async def read(self, handle_id: str, offset: int, size: int) -> bytes:
        handle = self._get(handle_id)
        async with handle.lock:
            return await _run_sync(handle.buffer.read, offset, size)

    async def close(self, handle_id: str) -> None:
        handle = self._get(handle_id)
        del self._handles[handle_id]
        async with handle.lock:
            try:
                await _run_sync(handle.buffer.close)
            except StreamCloseError:
                LOG.warning("error closing handle %s", handle_id, exc_info=True)

    def _get(self, handle_id: str) -> _Handle:
        try:
            return self._handles[handle_id]
        except KeyError:
            raise HandleNotFound(handle_id) from None
