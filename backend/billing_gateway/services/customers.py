import logging
from typing import Any, Mapping

from billing_gateway.schemas.billing import (
    Address,
    Currency,
    Customer,
    from_timestamp,
)
from billing_gateway.services.stripe_client import BillingClient
from billing_gateway.services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)

_LIVE_STATUSES = ("active", "trialing")


def address_params(data: dict[str, Any], address: Address) -> dict[str, Any]:
    """Add ``address`` (and phone / tax ID when set) to customer params."""
    line1 = f"{address.street} {address.building_number}".strip()
    data["address"] = {
        "line1": line1 or None,
        "line2": address.additional_details or None,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }
    if address.phone:
        data["phone"] = address.phone
    if address.tax_id:
        data["tax_id_data"] = [
            {
                "type": "company" if address.is_legal_entity else "individual",
                "value": address.tax_id,
            }
        ]
    return data


class CustomerService:
    def __init__(
        self,
        client: BillingClient,
        subscriptions: SubscriptionService | None = None,
    ):
        self.client = client
        self.subscriptions = subscriptions

    def get_or_create_customer(self, customer: Customer) -> Customer:
        if customer.stripe_customer_id:
            stripe_customer = self.retrieve_customer(customer.stripe_customer_id)
        else:
            data: dict[str, Any] = {
                "email": customer.email,
                "name": customer.name,
                "metadata": {"user_id": customer.id},
            }
            if customer.billing_address:
                address_params(data, customer.billing_address)
            stripe_customer = self.client.execute(
                lambda c: c.customers.create(params=data)
            )
            customer.stripe_customer_id = stripe_customer["id"]
            logger.info(
                f"Created Stripe customer {customer.stripe_customer_id} "
                f"for user {customer.id}"
            )

        self._update_from_stripe(customer, stripe_customer)
        return customer

    def update_customer(self, customer: Customer) -> Customer:
        if not customer.stripe_customer_id:
            return self.get_or_create_customer(customer)

        data: dict[str, Any] = {"email": customer.email, "name": customer.name}
        if customer.billing_address:
            address_params(data, customer.billing_address)
        customer_id = customer.stripe_customer_id
        stripe_customer = self.client.execute(
            lambda c: c.customers.update(customer_id, params=data)
        )
        self._update_from_stripe(customer, stripe_customer)
        return customer

    def delete_customer(self, customer: Customer) -> None:
        if not customer.stripe_customer_id:
            return
        customer_id = customer.stripe_customer_id
        self.client.execute(lambda c: c.customers.delete(customer_id))

        customer.stripe_customer_id = None
        customer.stripe_balance = None
        customer.stripe_balance_currency = None
        customer.active_subscription = None
        customer.stripe_created_at = None

    def retrieve_customer(self, stripe_customer_id: str) -> Any:
        return self.client.execute(
            lambda c: c.customers.retrieve(
                stripe_customer_id, params={"expand": ["subscriptions"]}
            )
        )

    def _update_from_stripe(
        self, customer: Customer, stripe_customer: Mapping[str, Any]
    ) -> None:
        if stripe_customer.get("balance") is not None:
            customer.stripe_balance = stripe_customer["balance"]
            currency = stripe_customer.get("currency")
            customer.stripe_balance_currency = (
                Currency(currency) if currency else Currency.USD
            )

        created = from_timestamp(stripe_customer.get("created"))
        if created is not None:
            customer.stripe_created_at = created

        if self.subscriptions is None:
            return
        listed = (stripe_customer.get("subscriptions") or {}).get("data") or []
        for stripe_subscription in listed:
            if stripe_subscription.get("status") in _LIVE_STATUSES:
                customer.active_subscription = (
                    self.subscriptions.sync_subscription_from_stripe(
                        customer, stripe_subscription
                    )
                )
                break
