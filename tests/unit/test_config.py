"""
Unit tests for configuration — defaults, nested env vars and validation.

`_env_file=None` keeps a developer's local .env out of the picture.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cert_gateway.channel import AckPolicy
from cert_gateway.config import AppSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PROJECT_ID", "PORT", "STORAGE__BACKEND", "CHANNEL__ENABLED", "CHANNEL__PROJECT_ID"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        settings = AppSettings(_env_file=None)

        assert settings.project_id == "test-project"
        assert settings.port == 8080
        assert settings.storage.backend == "memory"
        assert settings.storage.bucket_name == "product-certificates"
        assert settings.storage.collection_name == "certificates"
        assert settings.channel.request_topic == "CertificatesRequestTopic"
        assert settings.channel.response_topic == "CertificatesResponseTopic"
        assert settings.channel.request_subscription == "CertificatesRequestSubscription"
        assert settings.channel.ack_policy is AckPolicy.AT_MOST_ONCE
        assert settings.channel.reply_on_error is False
        assert settings.registry.deadline_seconds == 20.0

    def test_project_ids_fall_back_to_top_level(self) -> None:
        settings = AppSettings(_env_file=None, project_id="storage-proj")

        assert settings.storage_project_id == "storage-proj"
        assert settings.pubsub_project_id == "storage-proj"


class TestEnvironment:
    def test_nested_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROJECT_ID", "storage-proj")
        monkeypatch.setenv("PORT", "9090")
        monkeypatch.setenv("STORAGE__BACKEND", "durable")
        monkeypatch.setenv("STORAGE__BUCKET_NAME", "certs-prod")
        monkeypatch.setenv("CHANNEL__PROJECT_ID", "pubsub-proj")
        monkeypatch.setenv("CHANNEL__ACK_POLICY", "at_least_once")

        settings = AppSettings(_env_file=None)

        assert settings.port == 9090
        assert settings.storage.backend == "durable"
        assert settings.storage.bucket_name == "certs-prod"
        assert settings.channel.ack_policy is AckPolicy.AT_LEAST_ONCE
        assert settings.storage_project_id == "storage-proj"
        assert settings.pubsub_project_id == "pubsub-proj"


class TestValidation:
    def test_postgres_metadata_requires_dsn(self) -> None:
        with pytest.raises(ValidationError, match="DATABASE_DSN"):
            AppSettings(_env_file=None, storage={"backend": "durable", "metadata_store": "postgres"})

    def test_postgres_metadata_with_dsn(self) -> None:
        settings = AppSettings(
            _env_file=None,
            storage={"backend": "durable", "metadata_store": "postgres", "database_dsn": "postgresql://u:p@db/certs"},
        )

        assert settings.storage.database_dsn.get_secret_value() == "postgresql://u:p@db/certs"

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_range(self, port: int) -> None:
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, port=port)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, storage={"backend": "s3"})
