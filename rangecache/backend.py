"""Key/value persistence for chunks and object metadata."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol

from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BackendError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .settings import CacheSettings

LOG = logging.getLogger("rangecache.backend")

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}

# S3 DeleteObjects accepts at most this many keys per request.
DELETE_BATCH_SIZE = 1000


class StoredItem(NamedTuple):
    body: bytes
    metadata: dict[str, str]


class StorageBackend(Protocol):
    def setup(self) -> None: ...

    def get(self, key: str) -> StoredItem | None: ...

    def put(
        self, key: str, body: bytes, metadata: Mapping[str, str] | None = None
    ) -> None: ...

    def delete(self, key: str) -> None: ...

    def list_keys(self, prefix: str) -> Iterator[str]: ...

    def delete_prefix(self, prefix: str) -> int: ...

    def close(self) -> None: ...


def _error_code(error: ClientError) -> str | None:
    return error.response.get("Error", {}).get("Code")


def _has_code(error: Exception, codes: set[str]) -> bool:
    return isinstance(error, ClientError) and _error_code(error) in codes


class S3Backend:
    """Stores records as objects of a single S3 bucket.

    Record metadata travels as S3 user metadata, so values must be ASCII
    strings. Upserts and point lookups are atomic per key on the S3 side.
    """

    def __init__(self, client: Any, bucket: str, bucket_location: str = "us-east-1"):
        self._client = client
        self._bucket = bucket
        self._bucket_location = bucket_location

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> S3Backend:
        session = Session(
            aws_access_key_id=settings.access_key,
            aws_secret_access_key=settings.secret_key,
            aws_session_token=settings.session_token,
            region_name=settings.region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.endpoint,
            config=BotoConfig(signature_version="s3v4", retries={"max_attempts": 3}),
        )
        return cls(client, settings.bucket, settings.bucket_location)

    @property
    def bucket(self) -> str:
        return self._bucket

    def setup(self) -> None:
        """Create the bucket if it does not exist yet."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except (ClientError, BotoCoreError) as error:
            if not _has_code(error, MISSING_BUCKET_CODES):
                msg = f"could not access bucket {self._bucket}"
                raise BackendError(msg) from error
            create_kwargs: dict[str, Any] = {"Bucket": self._bucket}
            location = self._bucket_location
            if location and location != "us-east-1":
                create_kwargs["CreateBucketConfiguration"] = {
                    "LocationConstraint": location
                }
            try:
                self._client.create_bucket(**create_kwargs)
            except (ClientError, BotoCoreError) as create_error:
                msg = f"could not create bucket {self._bucket}"
                raise BackendError(msg) from create_error
            LOG.info("created cache bucket %s", self._bucket)

    def get(self, key: str) -> StoredItem | None:
        try:
            result = self._client.get_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as error:
            if _has_code(error, NOT_FOUND_CODES):
                return None
            msg = f"could not get {key} from bucket {self._bucket}"
            raise BackendError(msg) from error

        body = result["Body"]
        try:
            data = body.read()
        except (BotoCoreError, OSError) as error:
            msg = f"could not read {key} from bucket {self._bucket}"
            raise BackendError(msg) from error
        finally:
            body.close()
        return StoredItem(data, dict(result.get("Metadata") or {}))

    def put(
        self, key: str, body: bytes, metadata: Mapping[str, str] | None = None
    ) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                Metadata=dict(metadata or {}),
            )
        except (ClientError, BotoCoreError) as error:
            msg = f"could not store {key} in bucket {self._bucket}"
            raise BackendError(msg) from error

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as error:
            msg = f"could not delete {key} from bucket {self._bucket}"
            raise BackendError(msg) from error

    def list_keys(self, prefix: str) -> Iterator[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for entry in page.get("Contents", []):
                    yield entry["Key"]
        except (ClientError, BotoCoreError) as error:
            msg = f"could not list {prefix!r} in bucket {self._bucket}"
            raise BackendError(msg) from error

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` and return how many."""
        removed = 0
        batch: list[str] = []
        for key in self.list_keys(prefix):
            batch.append(key)
            if len(batch) == DELETE_BATCH_SIZE:
                removed += self._delete_batch(batch)
                batch = []
        if batch:
            removed += self._delete_batch(batch)
        return removed

    def _delete_batch(self, keys: list[str]) -> int:
        try:
            result = self._client.delete_objects(
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as error:
            msg = f"could not delete {len(keys)} keys from bucket {self._bucket}"
            raise BackendError(msg) from error
        errors = result.get("Errors") or []
        if errors:
            msg = f"could not delete {len(errors)} keys, first: {errors[0].get('Key')}"
            raise BackendError(msg)
        return len(keys)

    def close(self) -> None:
        self._client.close()
