import logging
from typing import Any, Mapping

from billing_gateway.schemas.billing import (
    Customer,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    from_timestamp,
)
from billing_gateway.services.errors import BillingStoreError
from billing_gateway.services.plans import PlanService
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient

logger = logging.getLogger(__name__)


def _period(stripe_subscription: Mapping[str, Any], key: str) -> int | None:
    # Newer API versions only report billing periods on subscription items.
    if stripe_subscription.get(key):
        return stripe_subscription[key]
    items = (stripe_subscription.get("items") or {}).get("data") or []
    return items[0].get(key) if items else None


class SubscriptionService:
    def __init__(
        self,
        client: BillingClient,
        plans: PlanService,
        store: BillingStore,
        success_url: str,
        cancel_url: str,
    ):
        self.client = client
        self.plans = plans
        self.store = store
        self.success_url = success_url
        self.cancel_url = cancel_url

    def create_checkout_session(
        self,
        customer: Customer,
        plan: SubscriptionPlan,
        trial_period_days: int | None = None,
    ) -> str:
        """Start a hosted checkout for ``plan`` and return its URL."""
        if not customer.stripe_customer_id:
            raise ValueError("Customer must have a Stripe customer ID")
        if not plan.stripe_price_id:
            self.plans.sync_plan_to_stripe(plan)

        session_data: dict[str, Any] = {
            "customer": customer.stripe_customer_id,
            "line_items": [{"price": plan.stripe_price_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
        }
        days = (
            trial_period_days
            if trial_period_days is not None
            else plan.trial_period_days
        )
        if days is not None:
            session_data["subscription_data"] = {"trial_period_days": days}

        session = self.client.execute(
            lambda c: c.checkout.sessions.create(params=session_data)
        )
        return session["url"]

    def retrieve_subscription(self, stripe_subscription_id: str) -> Any:
        return self.client.execute(
            lambda c: c.subscriptions.retrieve(stripe_subscription_id)
        )

    def cancel_subscription(
        self,
        customer: Customer,
        subscription: Subscription,
        at_period_end: bool = True,
    ) -> Subscription:
        if not subscription.stripe_subscription_id:
            raise ValueError("Subscription must have a Stripe subscription ID")
        stripe_id = subscription.stripe_subscription_id

        if at_period_end:
            stripe_subscription = self.client.execute(
                lambda c: c.subscriptions.update(
                    stripe_id, params={"cancel_at_period_end": True}
                )
            )
        else:
            stripe_subscription = self.client.execute(
                lambda c: c.subscriptions.cancel(stripe_id)
            )
        return self.sync_subscription_from_stripe(customer, stripe_subscription)

    def sync_subscription_from_stripe(
        self, customer: Customer, stripe_subscription: Mapping[str, Any]
    ) -> Subscription:
        """Copy provider state onto the matching local subscription.

        The customer's active subscription is used when it matches; otherwise
        the store is asked to find one, then to create one.
        """
        stripe_id = stripe_subscription["id"]
        subscription = customer.active_subscription
        if subscription is None or subscription.stripe_subscription_id != stripe_id:
            subscription = self.store.find_subscription(stripe_id)
        if subscription is None:
            subscription = self.store.create_subscription(customer, stripe_subscription)
            if subscription is None:
                raise BillingStoreError(
                    f"Store did not create a subscription for {stripe_id}"
                )

        subscription.stripe_subscription_id = stripe_id
        subscription.status = SubscriptionStatus(stripe_subscription["status"])

        start = from_timestamp(_period(stripe_subscription, "current_period_start"))
        if start is not None:
            subscription.start_date = start
        end = from_timestamp(_period(stripe_subscription, "current_period_end"))
        if end is not None:
            subscription.end_date = end
        subscription.trial_end_date = from_timestamp(
            stripe_subscription.get("trial_end")
        )

        logger.debug(f"Synced subscription {stripe_id} ({subscription.status.value})")
        return subscription

    def get_subscriptions_for_customer(self, customer: Customer) -> list[Any]:
        if not customer.stripe_customer_id:
            return []
        customer_id = customer.stripe_customer_id
        result = self.client.execute(
            lambda c: c.subscriptions.list(
                params={"customer": customer_id, "status": "all"}
            )
        )
        return list(result.get("data", []))
