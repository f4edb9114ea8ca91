"""
Application entry point — wires dependencies and starts the HTTP server.

Composition root: creates concrete adapters and injects them into the
CertificateStore, the RequestDispatcher and the MessageChannelAdapter.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Build the store (memory or GCS + Firestore/PostgreSQL)
  4. Build the Pub/Sub channel (optional; failure leaves HTTP up)
  5. Run uvicorn with the ASGI app
"""

from __future__ import annotations

import logging
import sys

import structlog
import uvicorn

from cert_gateway import __version__
from cert_gateway.adapters.firestore_repository import FirestoreProductRepository
from cert_gateway.adapters.gcs_blob_store import GcsBlobStore
from cert_gateway.adapters.memory import InMemoryBlobStore, InMemoryProductRepository
from cert_gateway.adapters.postgres_repository import PsycopgProductRepository
from cert_gateway.adapters.pubsub_transport import PubSubTransport
from cert_gateway.adapters.registry_client import IsccRegistryClient
from cert_gateway.channel import MessageChannelAdapter
from cert_gateway.config import AppSettings
from cert_gateway.dispatcher import RequestDispatcher
from cert_gateway.domain.ports import BlobStore, ProductRepository
from cert_gateway.store import CertificateStore

log = structlog.get_logger()


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console lines with ISO timestamps; events below
    `log_level` are filtered out before rendering.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_registry(settings: AppSettings) -> IsccRegistryClient:
    return IsccRegistryClient(
        search_page_url=settings.registry.search_page_url,
        table_url=settings.registry.table_url,
        deadline_seconds=settings.registry.deadline_seconds,
        max_attempts=settings.registry.max_attempts,
    )


def _create_storage(settings: AppSettings) -> tuple[BlobStore, ProductRepository]:
    """Pick the blob store and product repository pair for the configured backend."""
    storage = settings.storage
    if storage.backend == "memory":
        log.info("app.storage", backend="memory")
        return InMemoryBlobStore(), InMemoryProductRepository()

    blobs = GcsBlobStore(bucket_name=storage.bucket_name, project_id=settings.storage_project_id)
    if storage.metadata_store == "postgres":
        assert storage.database_dsn is not None  # guaranteed by StorageSettings validator
        repository = PsycopgProductRepository(
            dsn=storage.database_dsn.get_secret_value(),
            table=storage.collection_name,
        )
        repository.ensure_schema().peek_failure(
            lambda err: log.error("app.schema_failed", error=err.message)
        )
        products: ProductRepository = repository
    else:
        products = FirestoreProductRepository(
            collection_name=storage.collection_name,
            project_id=settings.storage_project_id,
        )
    log.info(
        "app.storage",
        backend="durable",
        bucket=storage.bucket_name,
        metadata_store=storage.metadata_store,
        collection=storage.collection_name,
    )
    return blobs, products


def create_store(settings: AppSettings) -> CertificateStore:
    blobs, products = _create_storage(settings)
    return CertificateStore(registry=create_registry(settings), blobs=blobs, products=products)


def create_channel(settings: AppSettings, store: CertificateStore) -> MessageChannelAdapter | None:
    """
    Build the Pub/Sub channel, or None when disabled or when the client cannot be created.

    Building the Pub/Sub clients needs credentials; without them the gateway
    still serves HTTP.
    """
    channel = settings.channel
    if not channel.enabled:
        log.info("app.channel_disabled")
        return None
    try:
        transport = PubSubTransport(
            project_id=settings.pubsub_project_id,
            max_messages=channel.max_messages,
            publish_timeout_seconds=channel.publish_timeout_seconds,
        )
    except Exception as e:
        log.error("app.channel_unavailable", error=str(e))
        return None
    return MessageChannelAdapter(
        transport=transport,
        dispatcher=RequestDispatcher(store),
        request_topic=channel.request_topic,
        response_topic=channel.response_topic,
        request_subscription=channel.request_subscription,
        ack_policy=channel.ack_policy,
        reply_on_error=channel.reply_on_error,
    )


def main() -> None:
    """Validate configuration and serve the ASGI app with uvicorn."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        port=settings.port,
        storage_backend=settings.storage.backend,
        channel_enabled=settings.channel.enabled,
    )

    try:
        uvicorn.run("cert_gateway.asgi:app", host=settings.host, port=settings.port, log_level="info")
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
