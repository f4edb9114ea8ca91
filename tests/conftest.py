"""
Shared test fixtures and fakes for the cert-gateway test suite.

The store is always assembled from the in-memory adapters plus a
FakeRegistry, so unit tests never touch the network, GCS or Firestore.
InProcessTransport stands in for Pub/Sub wherever a channel is exercised.
"""

from __future__ import annotations

import base64
import itertools
import json
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import pytest
from railway import ErrorCode, Result

from cert_gateway.adapters.memory import InMemoryBlobStore, InMemoryProductRepository
from cert_gateway.domain.models import INVALID_VERDICT, RegistryVerdict
from cert_gateway.store import CertificateStore

VALID_CERTIFICATE_ID = "ISCC-CORSIA-Cert-US201-2440920252"
VALID_UNTIL = date(2999, 1, 1)
PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF\n"
PDF_BASE64 = base64.b64encode(PDF_BYTES).decode("ascii")


class FakeRegistry:
    """
    CertificateRegistry double.

    Ids in `valid` get a positive verdict, everything else a negative one.
    Setting `failure` makes every lookup fail with that Result instead.
    """

    def __init__(self, valid: set[str] | None = None) -> None:
        self.valid = {VALID_CERTIFICATE_ID} if valid is None else valid
        self.failure: Result[RegistryVerdict] | None = None
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def lookup(self, certificate_id: str) -> Result[RegistryVerdict]:
        with self._lock:
            self.calls.append(certificate_id)
        if self.failure is not None:
            return self.failure
        if certificate_id in self.valid:
            return Result.success(RegistryVerdict(valid_until=VALID_UNTIL, is_valid=True))
        return Result.success(INVALID_VERDICT)

    def fail_with(self, code: ErrorCode, message: str = "registry unavailable") -> None:
        self.failure = Result.failure(code, message)


@dataclass
class FakeMessage:
    """InboundMessage double that counts acks and nacks."""

    data: bytes
    attributes: dict[str, str] = field(default_factory=dict)
    message_id: str = "msg-1"
    acks: int = 0
    nacks: int = 0

    def ack(self) -> None:
        self.acks += 1

    def nack(self) -> None:
        self.nacks += 1

    def json(self) -> Any:
        return json.loads(self.data)


class InProcessTransport:
    """
    MessageTransport double.

    Publishing records the message and delivers it synchronously to every
    subscription bound to the topic.
    """

    def __init__(self) -> None:
        self.topics: set[str] = set()
        self.subscriptions: dict[str, str] = {}
        self.callbacks: dict[str, Callable[[Any], None]] = {}
        self.published: list[tuple[str, FakeMessage]] = []
        self.closed = False
        self.fail_setup: Exception | None = None
        self._ids = itertools.count(1)

    def ensure_topic(self, topic: str) -> None:
        if self.fail_setup is not None:
            raise self.fail_setup
        self.topics.add(topic)

    def ensure_subscription(self, subscription: str, topic: str) -> None:
        self.subscriptions[subscription] = topic

    def publish(self, topic: str, data: bytes, attributes: Mapping[str, str]) -> str:
        message = FakeMessage(data=data, attributes=dict(attributes), message_id=f"pub-{next(self._ids)}")
        self.published.append((topic, message))
        for subscription, bound_topic in self.subscriptions.items():
            callback = self.callbacks.get(subscription)
            if bound_topic == topic and callback is not None:
                callback(message)
        return message.message_id

    def subscribe(self, subscription: str, callback: Callable[[Any], None]) -> None:
        self.callbacks[subscription] = callback

    def close(self) -> None:
        self.closed = True
        self.callbacks.clear()

    def messages_on(self, topic: str) -> list[FakeMessage]:
        return [message for published_topic, message in self.published if published_topic == topic]


@pytest.fixture()
def transport() -> InProcessTransport:
    return InProcessTransport()


@pytest.fixture()
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def products() -> InMemoryProductRepository:
    return InMemoryProductRepository()


@pytest.fixture()
def store(
    registry: FakeRegistry,
    blobs: InMemoryBlobStore,
    products: InMemoryProductRepository,
) -> CertificateStore:
    """A CertificateStore over fresh in-memory adapters and a FakeRegistry."""
    return CertificateStore(registry=registry, blobs=blobs, products=products)


@pytest.fixture()
def pdf_bytes() -> bytes:
    return PDF_BYTES
