import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from billing_gateway.core.config import Settings, get_settings
from billing_gateway.middleware.body_size import BodySizeLimitMiddleware
from billing_gateway.schemas.events import InboundWebhookRequest
from billing_gateway.services.dispatcher import EventDispatcher
from billing_gateway.services.webhook import WebhookGateway

logger = logging.getLogger(__name__)

# Applications register their handlers here before serving.
dispatcher = EventDispatcher()


def create_app(
    settings: Settings | None = None,
    event_dispatcher: EventDispatcher | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    event_dispatcher = event_dispatcher or dispatcher
    logging.basicConfig(level=settings.log_level.upper())

    gateway = WebhookGateway(
        secret=settings.stripe_webhook_secret.get_secret_value(),
        dispatcher=event_dispatcher,
        tolerance=settings.webhook_tolerance,
    )

    app = FastAPI(
        title="Stripe Billing Gateway",
        description="Verifies and dispatches Stripe webhooks",
        version="1.0.0",
    )
    app.state.gateway = gateway
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)

    @app.get("/health", include_in_schema=False)
    async def health():
        return {
            "status": "ok",
            "settings": {
                "webhook_path": settings.webhook_path,
                "webhook_tolerance": settings.webhook_tolerance,
                "signature_header": settings.signature_header,
            },
            "event_types": event_dispatcher.event_types,
        }

    @app.post(settings.webhook_path)
    async def stripe_webhook(request: Request):
        """Receive provider webhooks (signature-verified)."""
        inbound = InboundWebhookRequest(
            payload=await request.body(),
            signature_header=request.headers.get(settings.signature_header),
        )
        response = await gateway.handle(inbound)
        return JSONResponse(response.body, status_code=response.status_code)

    logger.info(f"Webhook route registered: POST {settings.webhook_path}")
    return app


app = create_app()
