"""
Channel client — request/response over the message channel with correlation.

Publishes request envelopes on the request topic and waits for the response
whose `correlationId` attribute matches. The gateway promises nothing about
delivery, so every call takes a timeout and silence past it raises
TimeoutError.

Each client should consume its own response subscription: responses that do
not belong to one of this client's pending requests are acked and ignored.

    client = ChannelClient(transport, "CertificatesRequestTopic",
                           "CertificatesResponseTopic", "MyResponseSubscription")
    client.start()
    response = client.upload("p1", pdf_bytes, "ISCC-CORSIA-Cert-US201-2440920252")
    response["status"]  # True
"""

from __future__ import annotations

import base64
import json
import threading
from concurrent.futures import Future
from typing import Any
from uuid import uuid4

import structlog

from cert_gateway.channel import CORRELATION_ATTRIBUTE
from cert_gateway.dispatcher import Operation
from cert_gateway.domain.ports import InboundMessage, MessageTransport

log = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 15.0


class ChannelClient:
    """Correlates asynchronous responses with the requests that caused them."""

    def __init__(
        self,
        transport: MessageTransport,
        request_topic: str,
        response_topic: str,
        response_subscription: str,
    ) -> None:
        self._transport = transport
        self._request_topic = request_topic
        self._response_topic = response_topic
        self._response_subscription = response_subscription
        self._lock = threading.Lock()
        self._pending: dict[str, Future[dict[str, Any]]] = {}

    def start(self) -> None:
        self._transport.ensure_topic(self._request_topic)
        self._transport.ensure_topic(self._response_topic)
        self._transport.ensure_subscription(self._response_subscription, self._response_topic)
        self._transport.subscribe(self._response_subscription, self.on_response)

    def close(self) -> None:
        self._transport.close()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def request(
        self,
        operation_type: str,
        data: dict[str, Any],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> dict[str, Any]:
        """Publish one request and block until its response arrives or `timeout` elapses."""
        correlation_id = uuid4().hex
        waiter: Future[dict[str, Any]] = Future()
        with self._lock:
            self._pending[correlation_id] = waiter
        try:
            envelope = {"operationType": operation_type, "data": data, CORRELATION_ATTRIBUTE: correlation_id}
            message_id = self._transport.publish(
                self._request_topic,
                json.dumps(envelope).encode("utf-8"),
                {CORRELATION_ATTRIBUTE: correlation_id},
            )
            log.info(
                "client.published",
                operation_type=operation_type,
                message_id=message_id,
                correlation_id=correlation_id,
            )
            try:
                return waiter.result(timeout=timeout)
            except TimeoutError:
                raise TimeoutError(
                    f"No response to {operation_type} within {timeout}s (correlationId={correlation_id})"
                ) from None
        finally:
            with self._lock:
                self._pending.pop(correlation_id, None)

    def on_response(self, message: InboundMessage) -> None:
        message.ack()
        correlation_id = (message.attributes or {}).get(CORRELATION_ATTRIBUTE)
        with self._lock:
            waiter = self._pending.get(correlation_id) if correlation_id else None
        if waiter is None:
            log.debug("client.unmatched_response", correlation_id=correlation_id)
            return
        try:
            payload = json.loads(message.data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning("client.malformed_response", correlation_id=correlation_id, error=str(e))
            return
        if not waiter.done():
            waiter.set_result(payload)

    # ──────────────────────── operation helpers ────────────────────────

    def upload(
        self,
        product_id: str,
        document: bytes,
        certificate_id: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> dict[str, Any]:
        data = {
            "productId": product_id,
            "file": base64.b64encode(document).decode("ascii"),
            "certificateId": certificate_id,
        }
        return self.request(Operation.UPLOAD, data, timeout)

    def list_products(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> dict[str, Any]:
        return self.request(Operation.LIST, {}, timeout)

    def list_product_certificates(
        self, product_id: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> dict[str, Any]:
        return self.request(Operation.LIST_PRODUCT_CERTIFICATES, {"productId": product_id}, timeout)

    def delete_certificate(
        self, product_id: str, certificate_id: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> dict[str, Any]:
        return self.request(
            Operation.DELETE_PRODUCT_CERTIFICATE,
            {"productId": product_id, "certificateId": certificate_id},
            timeout,
        )
