"""
Google Cloud Pub/Sub adapter — topics, subscriptions, publish and streaming pull.

Adapter layer — implements the MessageTransport port with google-cloud-pubsub.

`ensure_topic` / `ensure_subscription` create on first use and treat
AlreadyExists as success, so every process can run them at startup.
`subscribe` opens a streaming pull; the client library invokes the callback
on its own thread pool, bounded by FlowControl(max_messages). Delivered
pubsub Message objects already satisfy the InboundMessage port
(data, attributes, message_id, ack, nack).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import CancelledError

import structlog
from google.api_core.exceptions import AlreadyExists
from google.cloud import pubsub_v1
from google.cloud.pubsub_v1.subscriber.futures import StreamingPullFuture

from cert_gateway.domain.ports import InboundMessage

log = structlog.get_logger()


class PubSubTransport:
    """MessageTransport over one GCP project's Pub/Sub."""

    def __init__(
        self,
        project_id: str,
        max_messages: int = 10,
        publish_timeout_seconds: float = 30.0,
        publisher: pubsub_v1.PublisherClient | None = None,
        subscriber: pubsub_v1.SubscriberClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._max_messages = max_messages
        self._publish_timeout_seconds = publish_timeout_seconds
        self._publisher = publisher or pubsub_v1.PublisherClient()
        self._subscriber = subscriber or pubsub_v1.SubscriberClient()
        self._streams: list[StreamingPullFuture] = []

    def topic_path(self, topic: str) -> str:
        return self._publisher.topic_path(self._project_id, topic)

    def subscription_path(self, subscription: str) -> str:
        return self._subscriber.subscription_path(self._project_id, subscription)

    def ensure_topic(self, topic: str) -> None:
        path = self.topic_path(topic)
        try:
            self._publisher.create_topic(request={"name": path})
            log.info("pubsub.topic_created", topic=path)
        except AlreadyExists:
            log.debug("pubsub.topic_exists", topic=path)

    def ensure_subscription(self, subscription: str, topic: str) -> None:
        path = self.subscription_path(subscription)
        try:
            self._subscriber.create_subscription(
                request={"name": path, "topic": self.topic_path(topic)}
            )
            log.info("pubsub.subscription_created", subscription=path)
        except AlreadyExists:
            log.debug("pubsub.subscription_exists", subscription=path)

    def publish(self, topic: str, data: bytes, attributes: Mapping[str, str]) -> str:
        """Publish and wait for the server-assigned message id."""
        future = self._publisher.publish(self.topic_path(topic), data, **dict(attributes))
        return future.result(timeout=self._publish_timeout_seconds)

    def subscribe(self, subscription: str, callback: Callable[[InboundMessage], None]) -> None:
        path = self.subscription_path(subscription)
        stream = self._subscriber.subscribe(
            path,
            callback=callback,
            flow_control=pubsub_v1.types.FlowControl(max_messages=self._max_messages),
        )
        stream.add_done_callback(lambda f: _log_stream_end(path, f))
        self._streams.append(stream)
        log.info("pubsub.subscribed", subscription=path, max_messages=self._max_messages)

    def close(self) -> None:
        """Cancel every streaming pull and wait for it to wind down."""
        streams, self._streams = self._streams, []
        for stream in streams:
            stream.cancel()
            try:
                stream.result(timeout=self._publish_timeout_seconds)
            except (CancelledError, TimeoutError):
                pass
        self._subscriber.close()
        log.info("pubsub.closed", streams=len(streams))


def _log_stream_end(path: str, future: StreamingPullFuture) -> None:
    if future.cancelled():
        log.info("pubsub.stream_cancelled", subscription=path)
        return
    error = future.exception()
    if error is not None:
        log.error("pubsub.stream_failed", subscription=path, error=str(error))
