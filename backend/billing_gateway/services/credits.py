import logging
from typing import Any, Mapping

from billing_gateway.schemas.billing import (
    CreditTransaction,
    CreditTransactionType,
    Currency,
    Customer,
)
from billing_gateway.services.errors import BillingApiError
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient

logger = logging.getLogger(__name__)

CREDITS_PURCHASE = "credits_purchase"


def _expanded_id(value: Any) -> str | None:
    if isinstance(value, Mapping):
        return value.get("id")
    return value


class CreditService:
    def __init__(
        self,
        client: BillingClient,
        store: BillingStore,
        success_url: str,
        cancel_url: str,
    ):
        self.client = client
        self.store = store
        self.success_url = success_url
        self.cancel_url = cancel_url

    def create_credits_checkout_session(
        self,
        customer: Customer,
        amount: int,
        currency: Currency,
        credits: int,
        description: str,
    ) -> str:
        """Start a one-off checkout buying ``credits`` for ``amount``
        (smallest currency unit) and return its URL."""
        if not customer.stripe_customer_id:
            raise ValueError("Customer must have a Stripe customer ID")

        session_data = {
            "customer": customer.stripe_customer_id,
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.value,
                        "product_data": {
                            "name": description,
                            "metadata": {"credits": str(credits)},
                        },
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": {
                "credits": str(credits),
                "type": CREDITS_PURCHASE,
                "user_id": customer.id,
            },
        }
        session = self.client.execute(
            lambda c: c.checkout.sessions.create(params=session_data)
        )
        return session["url"]

    def use_credits(
        self,
        customer: Customer,
        credits: int,
        description: str,
        reference_id: str | None = None,
    ) -> int:
        """Deduct up to ``credits`` from the balance; returns the amount used.

        Nothing is deducted when ``reference_id`` was already recorded.
        """
        used = min(credits, customer.credits_balance)
        if used <= 0:
            return 0

        transaction = CreditTransaction(
            customer_id=customer.id,
            type=CreditTransactionType.USAGE,
            credits=used,
            description=description,
            reference_id=reference_id,
        )
        if not self.store.record_credit_transaction(customer, transaction):
            logger.info(f"Credit usage {reference_id} already recorded")
            return 0
        customer.credits_balance -= used
        return used

    def handle_successful_credits_payment(
        self, session_id: str
    ) -> CreditTransaction | None:
        """Credit the buyer of a paid checkout session.

        Returns None when the session is unpaid, is not a credits purchase,
        its customer is unknown to the store, or its payment was already
        credited.
        """
        session = self.client.execute(
            lambda c: c.checkout.sessions.retrieve(
                session_id, params={"expand": ["payment_intent", "customer"]}
            )
        )
        metadata = session.get("metadata") or {}
        if session.get("payment_status") != "paid" or not metadata.get("credits"):
            return None

        customer = self._find_customer(session.get("customer"))
        if customer is None:
            logger.warning(f"No local customer for checkout session {session_id}")
            return None

        credits = int(metadata["credits"])
        currency = session.get("currency")
        transaction = CreditTransaction(
            customer_id=customer.id,
            type=CreditTransactionType.PURCHASE,
            credits=credits,
            description=f"Purchase of {credits} credits",
            reference_id=_expanded_id(session.get("payment_intent")),
            amount=session.get("amount_total"),
            currency=Currency(currency) if currency else None,
        )
        if not self.store.record_credit_transaction(customer, transaction):
            logger.info(
                f"Credits for payment {transaction.reference_id} already applied"
            )
            return None
        customer.credits_balance += credits
        self.store.save_customer(customer)
        logger.info(f"Added {credits} credits to customer {customer.id}")
        return transaction

    def _find_customer(self, stripe_customer: Any) -> Customer | None:
        stripe_customer_id = _expanded_id(stripe_customer)
        if not stripe_customer_id:
            return None
        if not isinstance(stripe_customer, Mapping):
            try:
                stripe_customer = self.client.execute(
                    lambda c: c.customers.retrieve(stripe_customer_id)
                )
            except BillingApiError:
                return None
        user_id = (stripe_customer.get("metadata") or {}).get("user_id")
        return self.store.find_customer(stripe_customer_id, user_id)
