"""Seekable reads over a remote object, one network stream per session.

A ``StreamBuffer`` keeps at most one open stream and remembers the offset
its next read will return. Sequential reads reuse that stream; any other
offset closes it and opens a new ranged stream. Every byte range read from
the network is written to the chunk store so a later read at the same
offset never touches the network.

Sessions are not thread safe: callers must serialize ``read`` calls on one
session. Independent sessions over the same object share nothing but the
chunk store.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from .errors import (
    BackendError,
    EndOfData,
    StreamCloseError,
    StreamOpenError,
    StreamReadError,
)
from .models import Chunk, chunk_id

if TYPE_CHECKING:
    from types import TracebackType

    from .chunks import ChunkStore
    from .models import RemoteObject
    from .remote import ByteStream, RemoteObjectClient

LOG = logging.getLogger("rangecache.buffer")


class StreamBuffer:
    def __init__(
        self,
        client: RemoteObjectClient,
        chunks: ChunkStore,
        obj: RemoteObject,
    ):
        self._client = client
        self._chunks = chunks
        self._object = obj
        self._offset = 0
        self._stream: ByteStream | None = None
        # Correlates log lines of one session; carries no other meaning.
        self.session_id = f"{obj.object_id}:{uuid.uuid4().hex[:8]}"

    @property
    def object(self) -> RemoteObject:
        return self._object

    @property
    def cursor(self) -> int | None:
        """Offset the open stream yields next, ``None`` without a stream."""
        return self._offset if self._stream is not None else None

    def __enter__(self) -> StreamBuffer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def read(self, offset: int, size: int) -> bytes:
        """Return up to ``size`` bytes of the object starting at ``offset``.

        Cached chunks are returned without network access. The result is
        shorter than ``size`` only when the object ends inside the range.
        A zero ``size`` returns ``b""`` without touching cache or network.

        Raises:
            ValueError: if ``offset`` or ``size`` is negative.
            EndOfData: if ``offset`` is at or past the end of the object.
            StreamOpenError: if the remote stream could not be opened.
            StreamReadError: if reading from the remote stream failed.
        """
        if offset < 0 or size < 0:
            msg = f"invalid read offset={offset} size={size}"
            raise ValueError(msg)
        if size == 0:
            return b""

        key = chunk_id(self._object.object_id, offset)
        cached = self._load_chunk(key)
        if cached is not None:
            LOG.debug("found chunk %s in cache (session %s)", key, self.session_id)
            return cached.data

        LOG.debug("loading chunk %s from remote (session %s)", key, self.session_id)
        data = self._read_remote(offset, size)
        self._store_chunk(
            Chunk(
                object_id=self._object.object_id,
                offset=offset,
                size=size,
                data=data,
                chunk_id=key,
            )
        )
        return data

    def close(self) -> None:
        """Release the open stream, if any.

        The session counts as closed even when closing the stream fails.

        Raises:
            StreamCloseError: if the stream reported an error while closing.
        """
        stream, self._stream = self._stream, None
        if stream is None:
            return
        LOG.debug("closing stream handler %s", self.session_id)
        try:
            stream.close()
        except OSError as error:
            msg = f"could not close stream {self.session_id}"
            raise StreamCloseError(msg, self._object.object_id) from error

    def _load_chunk(self, key: str) -> Chunk | None:
        try:
            return self._chunks.load(key)
        except BackendError:
            LOG.warning(
                "chunk lookup failed for %s, reading from remote", key, exc_info=True
            )
            return None

    def _store_chunk(self, chunk: Chunk) -> None:
        # Fire and forget: the caller already holds valid data.
        try:
            self._chunks.store(chunk)
        except BackendError:
            LOG.warning(
                "failed to cache chunk %s (non-fatal, serving from remote)",
                chunk.chunk_id,
                exc_info=True,
            )

    def _read_remote(self, offset: int, size: int) -> bytes:
        if offset >= self._object.size:
            raise EndOfData(self._object.object_id, offset)

        if self._should_reopen(offset):
            self._reopen(offset)
        stream = self._stream
        assert stream is not None

        parts: list[bytes] = []
        remaining = size
        try:
            while remaining > 0:
                data = stream.read(remaining)
                if not data:
                    break
                parts.append(data)
                remaining -= len(data)
        except OSError as error:
            # The stream position is unknown now, so it cannot be reused.
            self._discard_stream()
            msg = (
                f"could not read bytes at offset {offset} "
                f"for stream {self.session_id}"
            )
            raise StreamReadError(msg, self._object.object_id) from error

        data = b"".join(parts)
        self._offset += len(data)
        return data

    def _should_reopen(self, offset: int) -> bool:
        return self._stream is None or offset != self._offset

    def _reopen(self, offset: int) -> None:
        self._discard_stream()
        LOG.debug("opening stream handler %s at offset %d", self.session_id, offset)
        try:
            self._stream = self._client.open(self._object, offset)
        except OSError as error:
            msg = f"could not open stream {self.session_id} at offset {offset}"
            raise StreamOpenError(msg, self._object.object_id) from error
        self._offset = offset

    def _discard_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except OSError:
            LOG.warning(
                "could not close old stream handler %s", self.session_id, exc_info=True
            )
