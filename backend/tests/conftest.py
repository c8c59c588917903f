import json
import os
from typing import Any, Mapping
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before the app reads its settings
os.environ.update(
    {
        "STRIPE_API_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "SUCCESS_URL": "https://app.example.com/billing/success",
        "CANCEL_URL": "https://app.example.com/billing/cancel",
        "WEBHOOK_TOLERANCE": "300",
    }
)

from billing_gateway.core.config import Settings, get_settings
from billing_gateway.main import create_app
from billing_gateway.schemas.billing import (
    CreditTransaction,
    Customer,
    Invoice,
    Subscription,
    SubscriptionPlan,
    SubscriptionPlanConfig,
)
from billing_gateway.services import signature
from billing_gateway.services.billing import BillingServices
from billing_gateway.services.dispatcher import EventDispatcher
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient

WEBHOOK_SECRET = "whsec_test"


def make_body(event_type: str = "invoice.paid", event_id: str = "evt_1", **extra) -> bytes:
    return json.dumps({"id": event_id, "type": event_type, **extra}).encode()


def signed_event(body: bytes, secret: str = WEBHOOK_SECRET):
    """Build a VerifiedEvent the only way one can be built."""
    return signature.verify(body, signature.generate_header(body, secret), secret)


class FakeStore(BillingStore):
    def __init__(self):
        self.customers: dict[str, Customer] = {}
        self.subscriptions: dict[str, Subscription] = {}
        self.invoices: dict[str, Invoice] = {}
        self.plans: dict[str, SubscriptionPlan] = {}
        self.transactions: list[CreditTransaction] = []
        self.saved: list[Any] = []
        self.undeletable: dict[str, str] = {}
        self.refuse_creation = False

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.stripe_customer_id] = customer
        return customer

    def find_customer(self, stripe_customer_id, user_id=None):
        return self.customers.get(stripe_customer_id)

    def find_subscription(self, stripe_subscription_id):
        return self.subscriptions.get(stripe_subscription_id)

    def create_subscription(self, customer, stripe_subscription: Mapping[str, Any]):
        if self.refuse_creation:
            return None
        subscription = Subscription(
            id=f"sub-local-{len(self.subscriptions) + 1}", customer_id=customer.id
        )
        self.subscriptions[stripe_subscription["id"]] = subscription
        return subscription

    def find_invoice(self, stripe_invoice_id):
        return self.invoices.get(stripe_invoice_id)

    def create_invoice(self, customer, stripe_invoice: Mapping[str, Any]):
        if self.refuse_creation:
            return None
        invoice = Invoice(
            id=f"inv-local-{len(self.invoices) + 1}", customer_id=customer.id
        )
        self.invoices[stripe_invoice["id"]] = invoice
        return invoice

    def record_credit_transaction(self, customer, transaction):
        reference = transaction.reference_id
        if reference is not None and any(
            t.reference_id == reference for t in self.transactions
        ):
            return False
        self.transactions.append(transaction)
        return True

    def list_plans(self):
        return list(self.plans.values())

    def load_plan(self, config: SubscriptionPlanConfig):
        if self.refuse_creation:
            return None
        plan = SubscriptionPlan.from_config(config)
        self.plans[plan.id] = plan
        return plan

    def save_plan(self, plan):
        self.plans[plan.id] = plan
        self.saved.append(plan)

    def can_delete_plan(self, plan):
        if plan.id in self.undeletable:
            return False, self.undeletable[plan.id]
        return True, None

    def save_customer(self, customer):
        self.saved.append(customer)

    def save_subscription(self, subscription):
        self.saved.append(subscription)

    def save_invoice(self, invoice):
        self.saved.append(invoice)


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def app(settings, dispatcher):
    return create_app(settings, dispatcher)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def stripe_sdk() -> MagicMock:
    return MagicMock()


@pytest.fixture
def billing_client(stripe_sdk) -> BillingClient:
    return BillingClient("sk_test_123", client=stripe_sdk)


@pytest.fixture
def services(billing_client, store, settings) -> BillingServices:
    return BillingServices.create(
        billing_client, store, settings.success_url, settings.cancel_url
    )


@pytest.fixture
def customer(store) -> Customer:
    return store.add_customer(
        Customer(
            id="user-1",
            email="ada@example.com",
            name="Ada",
            stripe_customer_id="cus_123",
        )
    )
