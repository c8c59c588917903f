"""Usage-based charges: one-off invoice items, metered usage and meter events.

Legacy usage records live under ``subscription_items.usage_records`` in stripe
releases that still ship them. Newer releases report usage through billing
meters instead (``billing.meter_events``).
"""

import logging
import time
from datetime import datetime
from typing import Any

from billing_gateway.schemas.billing import Currency, Customer
from billing_gateway.services.errors import BillingApiError
from billing_gateway.services.stripe_client import BillingClient

logger = logging.getLogger(__name__)


def _sdk_service(parent: Any, name: str) -> Any:
    service = getattr(parent, name, None)
    if service is None:
        raise BillingApiError(
            f"The installed stripe release has no {name} service",
            error_type="unsupported",
        )
    return service


class UsageService:
    def __init__(self, client: BillingClient):
        self.client = client

    def add_invoice_item(
        self,
        customer: Customer,
        amount: int,
        currency: Currency,
        description: str,
        metadata: dict[str, str] | None = None,
    ) -> Any:
        """Add a one-off charge to the customer's next invoice.

        ``amount`` is in the smallest currency unit.
        """
        if not customer.stripe_customer_id:
            raise ValueError("Customer must have a Stripe customer ID")

        item_data = {
            "customer": customer.stripe_customer_id,
            "amount": amount,
            "currency": currency.value,
            "description": description,
            "metadata": metadata or {},
        }
        item = self.client.execute(lambda c: c.invoice_items.create(params=item_data))
        logger.info(
            f"Added invoice item of {amount} {currency.value} "
            f"to customer {customer.id}"
        )
        return item

    def add_usage_record(
        self,
        subscription_item_id: str,
        quantity: int,
        timestamp: datetime | None = None,
        action: str | None = None,
    ) -> Any:
        usage_data: dict[str, Any] = {
            "quantity": quantity,
            "timestamp": int(timestamp.timestamp()) if timestamp else int(time.time()),
        }
        if action is not None:
            usage_data["action"] = action

        return self.client.execute(
            lambda c: _sdk_service(c.subscription_items, "usage_records").create(
                subscription_item_id, params=usage_data
            )
        )

    def get_usage_records(self, subscription_item_id: str) -> list[Any]:
        summaries = self.client.execute(
            lambda c: _sdk_service(
                c.subscription_items, "usage_record_summaries"
            ).list(subscription_item_id, params={"limit": 100})
        )
        return list(summaries.get("data", []))

    def record_meter_event(
        self,
        customer: Customer,
        event_name: str,
        value: int,
        timestamp: datetime | None = None,
        identifier: str | None = None,
    ) -> Any:
        """Report ``value`` units of usage to the billing meter ``event_name``.

        ``identifier`` deduplicates retries on the provider side.
        """
        if not customer.stripe_customer_id:
            raise ValueError("Customer must have a Stripe customer ID")

        event_data: dict[str, Any] = {
            "event_name": event_name,
            "payload": {
                "stripe_customer_id": customer.stripe_customer_id,
                "value": str(value),
            },
        }
        if timestamp is not None:
            event_data["timestamp"] = int(timestamp.timestamp())
        if identifier is not None:
            event_data["identifier"] = identifier

        return self.client.execute(
            lambda c: _sdk_service(c.billing, "meter_events").create(
                params=event_data
            )
        )
