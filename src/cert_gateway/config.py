"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so STORAGE__BACKEND maps to
storage.backend, CHANNEL__REQUEST_TOPIC to channel.request_topic, etc.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cert_gateway.adapters.registry_client import DEFAULT_SEARCH_PAGE_URL, DEFAULT_TABLE_URL
from cert_gateway.channel import AckPolicy

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class StorageSettings(BaseModel):
    """
    Where certificate documents and product metadata live.

    backend=memory keeps everything in process (development/tests).
    backend=durable writes documents to a GCS bucket and metadata to
    Firestore (default) or PostgreSQL.
    """

    backend: Literal["memory", "durable"] = "memory"
    metadata_store: Literal["firestore", "postgres"] = "firestore"
    project_id: str | None = Field(default=None, description="Overrides the top-level project_id")
    bucket_name: str = Field(default="product-certificates", min_length=1)
    collection_name: str = Field(
        default="certificates",
        min_length=1,
        description="Firestore collection, or PostgreSQL table when metadata_store=postgres",
    )
    database_dsn: SecretStr | None = Field(default=None, description="PostgreSQL connection string")

    @model_validator(mode="after")
    def require_dsn_for_postgres(self) -> StorageSettings:
        """PostgreSQL metadata needs a DSN; reject the combination at startup otherwise."""
        if self.backend == "durable" and self.metadata_store == "postgres" and self.database_dsn is None:
            raise ValueError("STORAGE__DATABASE_DSN is required when STORAGE__METADATA_STORE=postgres")
        return self


class ChannelSettings(BaseModel):
    """
    Pub/Sub request/response channel.

    Pub/Sub may live in a different project than storage; set project_id to
    point there. ack_policy chooses between at-most-once (ack before
    processing) and at-least-once (ack after the response is published).
    """

    enabled: bool = True
    project_id: str | None = None
    request_topic: str = "CertificatesRequestTopic"
    response_topic: str = "CertificatesResponseTopic"
    request_subscription: str = "CertificatesRequestSubscription"
    ack_policy: AckPolicy = AckPolicy.AT_MOST_ONCE
    reply_on_error: bool = False
    max_messages: int = Field(default=10, ge=1)
    publish_timeout_seconds: float = Field(default=30.0, gt=0)


class RegistrySettings(BaseModel):
    """ISCC certificate database endpoints and lookup deadline."""

    search_page_url: str = DEFAULT_SEARCH_PAGE_URL
    table_url: str = DEFAULT_TABLE_URL
    deadline_seconds: float = Field(default=20.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    project_id: str = "test-project"
    storage: StorageSettings = Field(default_factory=StorageSettings)
    channel: ChannelSettings = Field(default_factory=ChannelSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @property
    def storage_project_id(self) -> str:
        return self.storage.project_id or self.project_id

    @property
    def pubsub_project_id(self) -> str:
        return self.channel.project_id or self.project_id
