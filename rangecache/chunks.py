from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

from .models import Chunk

if TYPE_CHECKING:
    from .backend import StorageBackend

LOG = logging.getLogger("rangecache.chunks")

CHUNK_PREFIX = "chunks/"


class ChunkStore:
    """Persists fetched byte ranges keyed by chunk id.

    Each record is exactly one earlier read: stores replace the whole
    payload and nothing is merged or split.
    """

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    @staticmethod
    def _key(chunk_id: str) -> str:
        return f"{CHUNK_PREFIX}{quote(chunk_id, safe='')}"

    def store(self, chunk: Chunk) -> None:
        """Upsert ``chunk``.

        Raises:
            BackendError: if the backend write fails.
        """
        self._backend.put(
            self._key(chunk.chunk_id),
            chunk.data,
            {
                "object-id": quote(chunk.object_id, safe=""),
                "offset": str(chunk.offset),
                "size": str(chunk.size),
            },
        )

    def load(self, chunk_id: str) -> Chunk | None:
        """Return the chunk stored under ``chunk_id`` or ``None`` on a miss."""
        item = self._backend.get(self._key(chunk_id))
        if item is None:
            return None
        try:
            return Chunk(
                object_id=unquote(item.metadata["object-id"]),
                offset=int(item.metadata["offset"]),
                size=int(item.metadata["size"]),
                data=item.body,
                chunk_id=chunk_id,
            )
        except (KeyError, ValueError):
            LOG.warning("ignoring unreadable chunk record %s", chunk_id, exc_info=True)
            return None

    def clear_all(self) -> int:
        """Remove every stored chunk and return how many were removed."""
        removed = self._backend.delete_prefix(CHUNK_PREFIX)
        LOG.debug("removed %d chunks", removed)
        return removed
