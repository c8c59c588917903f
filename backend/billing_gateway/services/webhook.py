"""Webhook gateway: verify an inbound delivery, dispatch it, pick a status.

Status policy (drives provider redelivery):
- 400: payload or signature header missing, or verification failed.
  Nothing is dispatched.
- 200: event dispatched and at least one handler succeeded, or no handler
  was registered for it. Partial handler failures are logged, not retried.
- 500: every invoked handler failed; the provider will redeliver.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from billing_gateway.schemas.events import InboundWebhookRequest
from billing_gateway.services import signature
from billing_gateway.services.dispatcher import DispatchResult, EventDispatcher
from billing_gateway.services.errors import (
    AllHandlersFailedError,
    MalformedRequestError,
    SignatureVerificationError,
)

logger = logging.getLogger(__name__)


class RequestState(str, enum.Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DISPATCHED = "dispatched"
    RESPONDED = "responded"


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any]
    result: DispatchResult | None = None
    states: list[RequestState] = field(default_factory=list)


class WebhookGateway:
    def __init__(
        self,
        secret: str,
        dispatcher: EventDispatcher,
        tolerance: int = signature.DEFAULT_TOLERANCE,
    ):
        self._secret = secret
        self.dispatcher = dispatcher
        self.tolerance = tolerance

    def __repr__(self) -> str:
        return f"WebhookGateway(tolerance={self.tolerance})"

    async def handle(self, request: InboundWebhookRequest) -> WebhookResponse:
        states = [RequestState.RECEIVED]

        def respond(status_code: int, body: dict, result=None) -> WebhookResponse:
            states.append(RequestState.RESPONDED)
            trail = " -> ".join(s.value for s in states)
            logger.debug(f"Webhook request {trail} -> {status_code}")
            return WebhookResponse(status_code, body, result, states)

        if not request.payload or not request.signature_header:
            logger.warning("Webhook rejected: missing payload or signature")
            states.append(RequestState.REJECTED)
            return respond(400, {"detail": "Missing payload or signature"})

        try:
            event = signature.verify(
                request.payload,
                request.signature_header,
                self._secret,
                tolerance=self.tolerance,
            )
        except SignatureVerificationError:
            states.append(RequestState.REJECTED)
            return respond(400, {"detail": "Invalid signature"})
        except MalformedRequestError:
            states.append(RequestState.REJECTED)
            return respond(400, {"detail": "Invalid payload"})
        states.append(RequestState.VERIFIED)

        result = await self.dispatcher.dispatch(event)
        states.append(RequestState.DISPATCHED)

        try:
            result.raise_for_failures()
        except AllHandlersFailedError as exc:
            logger.error(f"{exc}; requesting redelivery")
            return respond(500, {"detail": "Error processing webhook"}, result)

        if result.failures:
            failed = ", ".join(f.handler for f in result.failures)
            logger.warning(
                f"Webhook {event.id} ({event.type}) partially failed: {failed}"
            )
        return respond(200, {"status": "received"}, result)
