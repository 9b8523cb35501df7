from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Configuration for the S3 bucket holding chunks and object metadata."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    endpoint: str = Field(
        default="http://127.0.0.1:9000",
        validation_alias="RANGECACHE_CACHE_ENDPOINT",
    )
    access_key: str = Field(
        default="minioadmin",
        validation_alias=AliasChoices(
            "RANGECACHE_CACHE_ACCESS_KEY",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str = Field(
        default="minioadmin",
        validation_alias=AliasChoices(
            "RANGECACHE_CACHE_SECRET_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias="RANGECACHE_CACHE_SESSION_TOKEN",
    )
    region: str = Field(
        default="us-east-1",
        validation_alias="RANGECACHE_CACHE_REGION",
    )
    bucket: str = Field(
        default="rangecache",
        validation_alias="RANGECACHE_CACHE_BUCKET",
    )
    bucket_location: str = Field(
        default="us-east-1",
        validation_alias="RANGECACHE_CACHE_BUCKET_LOCATION",
    )


class RemoteSettings(BaseSettings):
    """Configuration for the client that opens byte streams on remote objects."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    provider: Literal["http", "s3"] = Field(
        default="http",
        validation_alias="RANGECACHE_REMOTE_PROVIDER",
    )
    endpoint: str | None = Field(
        default=None,
        validation_alias="RANGECACHE_REMOTE_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGECACHE_REMOTE_ACCESS_KEY_ID",
            "AWS_REMOTE_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGECACHE_REMOTE_SECRET_ACCESS_KEY",
            "AWS_REMOTE_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias="RANGECACHE_REMOTE_SESSION_TOKEN",
    )
    region: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGECACHE_REMOTE_REGION",
            "AWS_REGION",
        ),
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="virtual",
        validation_alias="RANGECACHE_REMOTE_ADDRESSING_STYLE",
    )
    access_token: str | None = Field(
        default=None,
        validation_alias="RANGECACHE_REMOTE_ACCESS_TOKEN",
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        validation_alias="RANGECACHE_REMOTE_TIMEOUT",
    )
    read_timeout: float = Field(
        default=300.0,
        gt=0,
        validation_alias="RANGECACHE_REMOTE_READ_TIMEOUT",
    )


class ServiceSettings(BaseSettings):
    """Limits applied by the HTTP surface."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    max_read_size: int = Field(
        default=16 * 1024 * 1024,
        gt=0,
        validation_alias="RANGECACHE_MAX_READ_SIZE",
    )


def load_cache_settings_from_env() -> CacheSettings:
    """Load cache backend settings from environment variables.

    Returns:
        CacheSettings instance populated from environment variables.
    """
    return CacheSettings()


def load_remote_settings_from_env() -> RemoteSettings:
    """Load remote client settings from environment variables.

    Returns:
        RemoteSettings instance populated from environment variables.
    """
    return RemoteSettings()


def load_service_settings_from_env() -> ServiceSettings:
    return ServiceSettings()
