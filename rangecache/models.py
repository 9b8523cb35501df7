from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


def chunk_id(object_id: str, offset: int) -> str:
    """Return the cache slot for a read of ``object_id`` at ``offset``."""
    return f"{object_id}:{offset}"


class RemoteObject(BaseModel):
    """Metadata of a file hosted by the remote storage provider."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str
    is_dir: bool = False
    size: int = Field(default=0, ge=0)
    last_modified: datetime = Field(default_factory=lambda: datetime.now(UTC))
    download_url: str = ""
    parents: tuple[str, ...] = ()
    can_trash: bool = False


class OAuthToken(BaseModel):
    """Credentials sent with requests to the storage provider.

    Only persisted and replayed here; refreshing it is left to whoever
    stores it.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expiry: datetime | None = None

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass(frozen=True)
class Chunk:
    """A byte range previously fetched from a remote object.

    ``size`` is the requested length; ``data`` may be shorter when the read
    ran into the end of the object.
    """

    object_id: str
    offset: int
    size: int
    data: bytes = field(repr=False)
    chunk_id: str = ""

    def __post_init__(self) -> None:
        if len(self.data) > self.size:
            msg = f"chunk payload of {len(self.data)} bytes exceeds size {self.size}"
            raise ValueError(msg)
        if not self.chunk_id:
            object.__setattr__(self, "chunk_id", chunk_id(self.object_id, self.offset))
