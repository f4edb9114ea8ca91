"""
Acceptance test fixtures — one gateway process, wired end to end.

A single CertificateStore (in-memory adapters, FakeRegistry) is shared by
the HTTP app and the MessageChannelAdapter, exactly as in production; the
channel runs over the InProcessTransport so a ChannelClient on the same
transport talks to it like a remote service would.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from cert_gateway.asgi import create_app
from cert_gateway.channel import AckPolicy, MessageChannelAdapter
from cert_gateway.client import ChannelClient
from cert_gateway.dispatcher import RequestDispatcher
from cert_gateway.store import CertificateStore
from tests.conftest import InProcessTransport

REQUEST_TOPIC = "CertificatesRequestTopic"
RESPONSE_TOPIC = "CertificatesResponseTopic"
REQUEST_SUBSCRIPTION = "CertificatesRequestSubscription"


@dataclass
class Gateway:
    http: TestClient
    channel: MessageChannelAdapter
    store: CertificateStore
    transport: InProcessTransport

    def client(self, response_subscription: str = "ClientResponses") -> ChannelClient:
        channel_client = ChannelClient(self.transport, REQUEST_TOPIC, RESPONSE_TOPIC, response_subscription)
        channel_client.start()
        return channel_client


@pytest.fixture()
def gateway(store: CertificateStore, transport: InProcessTransport) -> Iterator[Gateway]:
    """Start the app (lifespan starts the channel) and stop it afterwards."""
    channel = MessageChannelAdapter(
        transport=transport,
        dispatcher=RequestDispatcher(store),
        request_topic=REQUEST_TOPIC,
        response_topic=RESPONSE_TOPIC,
        request_subscription=REQUEST_SUBSCRIPTION,
        ack_policy=AckPolicy.AT_LEAST_ONCE,
        reply_on_error=True,
    )
    app = create_app(store=store, channel=channel)
    with TestClient(app) as http:
        app.state.channel_starter.join(timeout=5)
        yield Gateway(http=http, channel=channel, store=store, transport=transport)
