import logging
from typing import Callable, TypeVar

import stripe

from billing_gateway.core.config import Settings
from billing_gateway.services.errors import BillingApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BillingClient:
    """Runs calls against the Stripe SDK and turns SDK errors into BillingApiError."""

    def __init__(self, api_key: str, client: stripe.StripeClient | None = None):
        self.client = client or stripe.StripeClient(api_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BillingClient":
        return cls(settings.stripe_api_key.get_secret_value())

    def execute(self, call: Callable[[stripe.StripeClient], T]) -> T:
        try:
            return call(self.client)
        except stripe.StripeError as exc:
            error_type = getattr(exc.error, "type", None) if exc.error else None
            message = exc.user_message or type(exc).__name__
            logger.error(
                f"Stripe API error: {message} "
                f"(http_status={exc.http_status} type={error_type} code={exc.code})"
            )
            raise BillingApiError(
                exc.user_message or "Stripe API request failed",
                http_status=exc.http_status,
                code=exc.code,
                error_type=error_type,
            ) from exc
