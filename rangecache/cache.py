from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .backend import S3Backend
from .chunks import ChunkStore
from .errors import BackendError
from .objects import ObjectStore

if TYPE_CHECKING:
    from .backend import StorageBackend
    from .settings import CacheSettings

LOG = logging.getLogger("rangecache.cache")


class Cache:
    """Chunk and metadata stores sharing one persistence backend."""

    def __init__(self, backend: StorageBackend):
        self._backend = backend
        self.chunks = ChunkStore(backend)
        self.objects = ObjectStore(backend)

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> Cache:
        return cls(S3Backend.from_settings(settings))

    def start(self) -> None:
        """Prepare the backend and drop chunks left over from a previous run.

        The remote objects may have changed since then, so old chunks are
        never trusted. Failing to clear them is logged and startup goes on.
        """
        LOG.debug("opening cache")
        self._backend.setup()
        try:
            self.chunks.clear_all()
        except BackendError:
            LOG.warning("could not clear stale chunks", exc_info=True)

    def close(self) -> None:
        LOG.debug("closing cache")
        self._backend.close()
