"""
Message Channel Adapter — binds the RequestDispatcher to a pub/sub transport.

Startup (idempotent): ensure request topic, response topic and request
subscription exist, then subscribe. A setup failure is logged and reported
through `start()` returning False; it never raises, so the HTTP gateway keeps
serving even when the channel never comes up.

Each delivered message walks an explicit state machine:

    RECEIVED ─parse ok─▶ PARSED ─▶ DISPATCHED ─▶ RESPONDED | DROPPED
        │
        └─parse error─▶ REJECTED ─▶ (RESPONDED when reply_on_error)

ACKED is entered at a point chosen by the AckPolicy:
  AT_MOST_ONCE   ack right after receipt/parse, before dispatching. A crash
                 mid-processing loses the message; no redelivery.
  AT_LEAST_ONCE  ack only after the response is published; any failure
                 nacks (→ FAILED) and the transport redelivers. Handlers may
                 then run more than once for the same request.
Malformed messages are always acked, otherwise they would be redelivered forever.

Correlation token: attribute `correlationId`, else envelope `correlationId`,
else the transport message id. It is copied onto the response attributes.
Unknown operationTypes produce no response unless `reply_on_error` is set;
callers must treat silence past their own timeout as failure.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from cert_gateway.dispatcher import RequestDispatcher
from cert_gateway.domain.ports import InboundMessage, MessageTransport

log = structlog.get_logger()

CORRELATION_ATTRIBUTE = "correlationId"
ERROR_OPERATION = "errorResponse"


class AckPolicy(StrEnum):
    AT_MOST_ONCE = "at_most_once"
    AT_LEAST_ONCE = "at_least_once"


class MessageState(StrEnum):
    RECEIVED = "received"
    PARSED = "parsed"
    REJECTED = "rejected"
    DISPATCHED = "dispatched"
    ACKED = "acked"
    RESPONDED = "responded"
    DROPPED = "dropped"
    FAILED = "failed"


class MalformedEnvelope(ValueError):
    """The message body is not a `{operationType, data}` JSON object."""


@dataclass
class MessageContext:
    """Per-message progress through the state machine; `history` records every transition."""

    message_id: str
    correlation_id: str
    operation_type: str | None = None
    state: MessageState = MessageState.RECEIVED
    history: list[MessageState] = field(default_factory=lambda: [MessageState.RECEIVED])

    def advance(self, state: MessageState) -> None:
        self.state = state
        self.history.append(state)
        log.debug(
            "channel.state",
            state=state.value,
            message_id=self.message_id,
            correlation_id=self.correlation_id,
        )


def parse_envelope(data: bytes) -> dict[str, Any]:
    """Decode and shape-check a request envelope. `data` may be omitted (→ {})."""
    try:
        envelope = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedEnvelope(f"request is not JSON: {e}") from e
    if not isinstance(envelope, dict):
        raise MalformedEnvelope("request envelope must be a JSON object")
    if not isinstance(envelope.get("operationType"), str):
        raise MalformedEnvelope("request envelope has no operationType")
    payload = envelope.get("data")
    if payload is None:
        envelope["data"] = {}
    elif not isinstance(payload, dict):
        raise MalformedEnvelope("request envelope data must be an object")
    return envelope


class MessageChannelAdapter:
    """Consumes request messages and publishes correlated responses."""

    def __init__(
        self,
        transport: MessageTransport,
        dispatcher: RequestDispatcher,
        request_topic: str,
        response_topic: str,
        request_subscription: str,
        ack_policy: AckPolicy = AckPolicy.AT_MOST_ONCE,
        reply_on_error: bool = False,
    ) -> None:
        self._transport = transport
        self._dispatcher = dispatcher
        self._request_topic = request_topic
        self._response_topic = response_topic
        self._request_subscription = request_subscription
        self._ack_policy = ack_policy
        self._reply_on_error = reply_on_error
        self._running = False
        self._closed = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ack_policy(self) -> AckPolicy:
        return self._ack_policy

    def start(self) -> bool:
        """Ensure topology and subscribe. Returns False (after logging) when setup fails or the adapter was stopped."""
        if self._closed:
            log.warning("channel.start_after_stop", subscription=self._request_subscription)
            return False
        try:
            self._transport.ensure_topic(self._request_topic)
            self._transport.ensure_topic(self._response_topic)
            self._transport.ensure_subscription(self._request_subscription, self._request_topic)
            if self._closed:
                log.warning("channel.start_after_stop", subscription=self._request_subscription)
                return False
            self._transport.subscribe(self._request_subscription, self.handle_message)
        except Exception as e:
            log.error(
                "channel.setup_failed",
                subscription=self._request_subscription,
                error=str(e),
            )
            return False
        self._running = True
        log.info(
            "channel.listening",
            subscription=self._request_subscription,
            response_topic=self._response_topic,
            ack_policy=self._ack_policy.value,
        )
        return True

    def stop(self) -> None:
        """Close the transport, whether or not start() succeeded. Idempotent."""
        if self._closed:
            return
        self._closed = True
        was_running = self._running
        self._running = False
        try:
            self._transport.close()
        except Exception as e:
            log.warning("channel.stop_failed", error=str(e))
        log.info("channel.stopped", was_running=was_running)

    def handle_message(self, message: InboundMessage) -> MessageContext:
        """Process one delivery. Never raises: every failure ends in a terminal state."""
        attributes = dict(message.attributes or {})
        ctx = MessageContext(
            message_id=message.message_id,
            correlation_id=attributes.get(CORRELATION_ATTRIBUTE) or message.message_id,
        )
        try:
            envelope = parse_envelope(message.data)
        except MalformedEnvelope as e:
            self._reject(message, ctx, str(e))
            return ctx

        ctx.operation_type = envelope["operationType"]
        if CORRELATION_ATTRIBUTE not in attributes and envelope.get(CORRELATION_ATTRIBUTE):
            ctx.correlation_id = str(envelope[CORRELATION_ATTRIBUTE])
        ctx.advance(MessageState.PARSED)
        log.info(
            "channel.message_parsed",
            operation_type=ctx.operation_type,
            message_id=ctx.message_id,
            correlation_id=ctx.correlation_id,
        )

        try:
            if self._ack_policy is AckPolicy.AT_MOST_ONCE:
                self._ack(message, ctx)
            self._process(envelope, ctx)
            if self._ack_policy is AckPolicy.AT_LEAST_ONCE:
                self._ack(message, ctx)
        except Exception as e:
            self._fail(message, ctx, e)
        return ctx

    def _process(self, envelope: dict[str, Any], ctx: MessageContext) -> None:
        operation_type = envelope["operationType"]
        response = self._dispatcher.dispatch(operation_type, envelope["data"])
        ctx.advance(MessageState.DISPATCHED)

        if response is None:
            if self._reply_on_error:
                self._publish(_error_response(f"unknown operationType: {operation_type}", operation_type), ctx)
            else:
                ctx.advance(MessageState.DROPPED)
                log.warning(
                    "channel.dropped",
                    operation_type=operation_type,
                    message_id=ctx.message_id,
                    correlation_id=ctx.correlation_id,
                )
            return
        self._publish(response, ctx)

    def _reject(self, message: InboundMessage, ctx: MessageContext, reason: str) -> None:
        ctx.advance(MessageState.REJECTED)
        log.warning(
            "channel.message_rejected",
            reason=reason,
            message_id=ctx.message_id,
            correlation_id=ctx.correlation_id,
        )
        try:
            self._ack(message, ctx)
            if self._reply_on_error:
                self._publish(_error_response("malformed request"), ctx)
        except Exception as e:
            log.error("channel.publish_failed", error=str(e), message_id=ctx.message_id)
            ctx.advance(MessageState.FAILED)

    def _publish(self, response: dict[str, Any], ctx: MessageContext) -> None:
        published_id = self._transport.publish(
            self._response_topic,
            json.dumps(response).encode("utf-8"),
            {CORRELATION_ATTRIBUTE: ctx.correlation_id},
        )
        ctx.advance(MessageState.RESPONDED)
        log.info(
            "channel.responded",
            operation_type=response.get("operationType"),
            response_topic=self._response_topic,
            published_id=published_id,
            message_id=ctx.message_id,
            correlation_id=ctx.correlation_id,
        )

    def _ack(self, message: InboundMessage, ctx: MessageContext) -> None:
        message.ack()
        ctx.advance(MessageState.ACKED)

    def _fail(self, message: InboundMessage, ctx: MessageContext, error: Exception) -> None:
        log.error(
            "channel.processing_failed",
            operation_type=ctx.operation_type,
            error=str(error),
            message_id=ctx.message_id,
            correlation_id=ctx.correlation_id,
        )
        ctx.advance(MessageState.FAILED)
        if self._ack_policy is AckPolicy.AT_LEAST_ONCE and MessageState.ACKED not in ctx.history:
            try:
                message.nack()
            except Exception as e:
                log.warning("channel.nack_failed", error=str(e), message_id=ctx.message_id)


def _error_response(reason: str, operation_type: str | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {"operationType": ERROR_OPERATION, "status": False, "error": reason}
    if operation_type is not None:
        response["requestOperationType"] = operation_type
    return response
