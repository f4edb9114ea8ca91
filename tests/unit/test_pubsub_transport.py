"""
Unit tests for the Pub/Sub transport — uses MagicMock publisher/subscriber
clients, never a real Pub/Sub service or emulator.
"""

from __future__ import annotations

from concurrent.futures import CancelledError
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import AlreadyExists

from cert_gateway.adapters.pubsub_transport import PubSubTransport

PROJECT = "test-project"


@pytest.fixture()
def publisher() -> MagicMock:
    mock = MagicMock()
    mock.topic_path.side_effect = lambda project, topic: f"projects/{project}/topics/{topic}"
    return mock


@pytest.fixture()
def subscriber() -> MagicMock:
    mock = MagicMock()
    mock.subscription_path.side_effect = lambda project, sub: f"projects/{project}/subscriptions/{sub}"
    return mock


@pytest.fixture()
def transport(publisher: MagicMock, subscriber: MagicMock) -> PubSubTransport:
    return PubSubTransport(
        project_id=PROJECT,
        max_messages=5,
        publish_timeout_seconds=2.0,
        publisher=publisher,
        subscriber=subscriber,
    )


class TestTopology:
    def test_creates_missing_topic(self, transport: PubSubTransport, publisher: MagicMock) -> None:
        transport.ensure_topic("Requests")

        publisher.create_topic.assert_called_once_with(request={"name": "projects/test-project/topics/Requests"})

    def test_existing_topic_is_fine(self, transport: PubSubTransport, publisher: MagicMock) -> None:
        publisher.create_topic.side_effect = AlreadyExists("topic exists")

        transport.ensure_topic("Requests")

    def test_creates_subscription_bound_to_topic(self, transport: PubSubTransport, subscriber: MagicMock) -> None:
        transport.ensure_subscription("RequestSub", "Requests")

        subscriber.create_subscription.assert_called_once_with(
            request={
                "name": "projects/test-project/subscriptions/RequestSub",
                "topic": "projects/test-project/topics/Requests",
            }
        )

    def test_existing_subscription_is_fine(self, transport: PubSubTransport, subscriber: MagicMock) -> None:
        subscriber.create_subscription.side_effect = AlreadyExists("subscription exists")

        transport.ensure_subscription("RequestSub", "Requests")

    def test_other_errors_propagate(self, transport: PubSubTransport, publisher: MagicMock) -> None:
        publisher.create_topic.side_effect = PermissionError("denied")

        with pytest.raises(PermissionError):
            transport.ensure_topic("Requests")


class TestPublish:
    def test_publishes_with_attributes_and_waits_for_id(
        self, transport: PubSubTransport, publisher: MagicMock
    ) -> None:
        publisher.publish.return_value.result.return_value = "server-id-1"

        message_id = transport.publish("Responses", b'{"ok": true}', {"correlationId": "c1"})

        assert message_id == "server-id-1"
        publisher.publish.assert_called_once_with(
            "projects/test-project/topics/Responses", b'{"ok": true}', correlationId="c1"
        )
        publisher.publish.return_value.result.assert_called_once_with(timeout=2.0)


class TestSubscribe:
    def test_streaming_pull_with_flow_control(self, transport: PubSubTransport, subscriber: MagicMock) -> None:
        callback = MagicMock()

        transport.subscribe("RequestSub", callback)

        args, kwargs = subscriber.subscribe.call_args
        assert args == ("projects/test-project/subscriptions/RequestSub",)
        assert kwargs["callback"] is callback
        assert kwargs["flow_control"].max_messages == 5

    def test_close_cancels_streams(self, transport: PubSubTransport, subscriber: MagicMock) -> None:
        stream = subscriber.subscribe.return_value
        stream.result.side_effect = CancelledError()
        transport.subscribe("RequestSub", MagicMock())

        transport.close()

        stream.cancel.assert_called_once()
        subscriber.close.assert_called_once()
