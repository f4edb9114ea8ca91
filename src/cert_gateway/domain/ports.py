"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the gateway needs (contracts) without specifying
HOW it's done (implementation). Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters satisfy
the contract simply by implementing the methods — no inheritance.

Storage is split in two so that the mock and durable modes are
interchangeable behind the same CertificateStore:
  BlobStore          → document bytes (GCS or memory)
  ProductRepository  → per-product metadata documents (Firestore, PostgreSQL or memory)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable

from railway.result import Result

from cert_gateway.domain.models import ProductRecord, RegistryVerdict


@runtime_checkable
class CertificateRegistry(Protocol):
    """
    Port: ask the external certificate registry about a certificate id.

    A Success carries the registry's verdict (which may be "not valid");
    a Failure means the registry could not be asked or answered nonsense.
    """

    def lookup(self, certificate_id: str) -> Result[RegistryVerdict]: ...


@runtime_checkable
class BlobStore(Protocol):
    """Port: persist and remove certificate documents."""

    def put(self, object_name: str, data: bytes) -> Result[str]:
        """Store the bytes and return the storage locator (URI) of the new object."""
        ...

    def delete(self, locator: str) -> Result[bool]:
        """
        Remove the object at `locator`.

        An object that is already gone counts as deleted.
        """
        ...


@runtime_checkable
class ProductRepository(Protocol):
    """
    Port: per-product metadata documents.

    `load` of an unknown product yields an empty ProductRecord, never a failure.
    """

    def load(self, product_id: str) -> Result[ProductRecord]: ...

    def save(self, product: ProductRecord) -> Result[ProductRecord]: ...

    def remove(self, product_id: str) -> Result[str]: ...

    def product_ids(self) -> Result[list[str]]: ...


@runtime_checkable
class InboundMessage(Protocol):
    """A message delivered by the transport; must be acked or nacked exactly once."""

    @property
    def data(self) -> bytes: ...

    @property
    def attributes(self) -> Mapping[str, str]: ...

    @property
    def message_id(self) -> str: ...

    def ack(self) -> None: ...

    def nack(self) -> None: ...


@runtime_checkable
class MessageTransport(Protocol):
    """
    Port: durable publish/subscribe transport (topics + subscriptions).

    `ensure_*` are idempotent: an existing topic or subscription is not an error.
    """

    def ensure_topic(self, topic: str) -> None: ...

    def ensure_subscription(self, subscription: str, topic: str) -> None: ...

    def publish(self, topic: str, data: bytes, attributes: Mapping[str, str]) -> str: ...

    def subscribe(self, subscription: str, callback: Callable[[InboundMessage], None]) -> None: ...

    def close(self) -> None: ...
