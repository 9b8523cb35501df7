"""Exceptions raised by the read path."""

from __future__ import annotations


class EndOfData(EOFError):
    """Raised when a read starts at or beyond the end of a remote object."""

    def __init__(self, object_id: str, offset: int):
        super().__init__(f"no data at offset {offset} of object {object_id}")
        self.object_id = object_id
        self.offset = offset


class RemoteError(OSError):
    """A remote object client could not open or read a byte stream."""


class StreamError(OSError):
    def __init__(self, message: str, object_id: str):
        super().__init__(message)
        self.object_id = object_id


class StreamOpenError(StreamError):
    pass


class StreamReadError(StreamError):
    pass


class StreamCloseError(StreamError):
    pass


class BackendError(Exception):
    """The persistence backend failed to complete an operation."""


class ObjectNotFound(LookupError):
    def __init__(self, description: str):
        super().__init__(f"could not find {description} in cache")
