from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

from pydantic import ValidationError

from .errors import BackendError, ObjectNotFound
from .models import OAuthToken, RemoteObject

if TYPE_CHECKING:
    from .backend import StorageBackend

LOG = logging.getLogger("rangecache.objects")

OBJECT_PREFIX = "objects/"
PARENT_PREFIX = "parents/"
PAGE_TOKEN_KEY = "page_token"
TOKEN_KEY = "token.json"


def _quote(value: str) -> str:
    return quote(value, safe="")


class ObjectStore:
    """Remote object metadata kept alongside the chunks.

    Objects are JSON documents; lookups by parent go through one empty
    index record per (parent, object) pair.
    """

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    @staticmethod
    def _object_key(object_id: str) -> str:
        return f"{OBJECT_PREFIX}{_quote(object_id)}.json"

    @staticmethod
    def _parent_prefix(parent: str) -> str:
        return f"{PARENT_PREFIX}{_quote(parent)}/"

    def _find(self, object_id: str) -> RemoteObject | None:
        item = self._backend.get(self._object_key(object_id))
        if item is None:
            return None
        try:
            return RemoteObject.model_validate_json(item.body)
        except ValidationError as error:
            msg = f"corrupt metadata record for object {object_id}"
            raise BackendError(msg) from error

    def get_object(self, object_id: str) -> RemoteObject:
        LOG.debug("getting object %s", object_id)
        obj = self._find(object_id)
        if obj is None:
            raise ObjectNotFound(f"object {object_id}")
        return obj

    def get_objects_by_parent(self, parent: str) -> list[RemoteObject]:
        LOG.debug("getting children of %s", parent)
        prefix = self._parent_prefix(parent)
        children: list[RemoteObject] = []
        for key in self._backend.list_keys(prefix):
            object_id = unquote(key[len(prefix) :])
            obj = self._find(object_id)
            if obj is None:
                LOG.debug("skipping stale index entry %s", key)
                continue
            children.append(obj)
        return children

    def get_object_by_parent_and_name(self, parent: str, name: str) -> RemoteObject:
        LOG.debug("getting object %s in parent %s", name, parent)
        for obj in self.get_objects_by_parent(parent):
            if obj.name == name:
                return obj
        raise ObjectNotFound(f"object with name {name} in parent {parent}")

    def update_object(self, obj: RemoteObject) -> None:
        """Insert or replace ``obj`` and rewrite its parent index entries."""
        previous = self._find(obj.object_id)
        self._backend.put(
            self._object_key(obj.object_id), obj.model_dump_json().encode()
        )
        if previous is not None:
            for parent in set(previous.parents) - set(obj.parents):
                self._backend.delete(self._index_key(parent, obj.object_id))
        for parent in obj.parents:
            self._backend.put(self._index_key(parent, obj.object_id), b"")

    def delete_object(self, object_id: str) -> None:
        obj = self.get_object(object_id)
        for parent in obj.parents:
            self._backend.delete(self._index_key(parent, object_id))
        self._backend.delete(self._object_key(object_id))

    def store_start_page_token(self, token: str) -> None:
        LOG.debug("storing page token %s", token)
        self._backend.put(PAGE_TOKEN_KEY, token.encode())

    def get_start_page_token(self) -> str | None:
        item = self._backend.get(PAGE_TOKEN_KEY)
        if item is None:
            return None
        return item.body.decode()

    def store_token(self, token: OAuthToken) -> None:
        LOG.debug("storing token in cache")
        self._backend.put(TOKEN_KEY, token.model_dump_json().encode())

    def load_token(self) -> OAuthToken | None:
        LOG.debug("loading token from cache")
        item = self._backend.get(TOKEN_KEY)
        if item is None:
            return None
        try:
            return OAuthToken.model_validate_json(item.body)
        except ValidationError as error:
            msg = "corrupt token record"
            raise BackendError(msg) from error

    def _index_key(self, parent: str, object_id: str) -> str:
        return f"{self._parent_prefix(parent)}{_quote(object_id)}"
