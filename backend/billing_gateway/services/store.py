"""Interface to the application's persistence for billing entities.

The gateway never stores anything itself. Services ask the application's
``BillingStore`` to look up or create local entities, and hand back the
entities they changed so the application can persist them.
"""

import abc
from typing import Any, Mapping

from billing_gateway.schemas.billing import (
    CreditTransaction,
    Customer,
    Invoice,
    Subscription,
    SubscriptionPlan,
    SubscriptionPlanConfig,
)


class BillingStore(abc.ABC):
    @abc.abstractmethod
    def find_customer(
        self, stripe_customer_id: str, user_id: str | None = None
    ) -> Customer | None:
        """Look up the local customer for a provider customer ID.

        ``user_id`` is the local identifier stored in the provider customer's
        metadata, when known.
        """

    @abc.abstractmethod
    def find_subscription(self, stripe_subscription_id: str) -> Subscription | None:
        ...

    @abc.abstractmethod
    def create_subscription(
        self, customer: Customer, stripe_subscription: Mapping[str, Any]
    ) -> Subscription | None:
        """Return a new local subscription for ``stripe_subscription``."""

    @abc.abstractmethod
    def find_invoice(self, stripe_invoice_id: str) -> Invoice | None:
        ...

    @abc.abstractmethod
    def create_invoice(
        self, customer: Customer, stripe_invoice: Mapping[str, Any]
    ) -> Invoice | None:
        ...

    @abc.abstractmethod
    def record_credit_transaction(
        self, customer: Customer, transaction: CreditTransaction
    ) -> bool:
        """Persist a credit movement.

        Returns False, storing nothing, when a transaction with the same
        ``reference_id`` was already recorded. Purchases carry the payment
        intent ID as ``reference_id``, so a redelivered webhook is not credited
        twice.
        """

    @abc.abstractmethod
    def list_plans(self) -> list[SubscriptionPlan]:
        ...

    @abc.abstractmethod
    def load_plan(self, config: SubscriptionPlanConfig) -> SubscriptionPlan | None:
        """Return the stored plan for ``config.id``, creating it if needed."""

    @abc.abstractmethod
    def save_plan(self, plan: SubscriptionPlan) -> None:
        ...

    def can_delete_plan(self, plan: SubscriptionPlan) -> tuple[bool, str | None]:
        """Whether a plan dropped from configuration may be deactivated."""
        return True, None

    def save_customer(self, customer: Customer) -> None:
        pass

    def save_subscription(self, subscription: Subscription) -> None:
        pass

    def save_invoice(self, invoice: Invoice) -> None:
        pass
