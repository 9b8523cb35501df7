"""Chunk-cached, seekable streaming reads of remote cloud objects."""

from .buffer import StreamBuffer
from .cache import Cache
from .chunks import ChunkStore
from .errors import EndOfData, StreamError
from .models import Chunk, OAuthToken, RemoteObject, chunk_id
from .objects import ObjectStore

__all__ = [
    "Cache",
    "Chunk",
    "ChunkStore",
    "EndOfData",
    "OAuthToken",
    "ObjectStore",
    "RemoteObject",
    "StreamBuffer",
    "StreamError",
    "chunk_id",
]
