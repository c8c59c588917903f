import pytest

from billing_gateway.schemas.billing import (
    InvoiceStatus,
    Subscription,
    SubscriptionStatus,
)
from billing_gateway.services.handlers import register_billing_handlers
from conftest import make_body, signed_event


@pytest.fixture
def handlers(dispatcher, services):
    return register_billing_handlers(dispatcher, services)


def test_registers_billing_event_types(dispatcher, handlers):
    assert dispatcher.event_types == [
        "checkout.session.completed",
        "customer.subscription.deleted",
        "customer.subscription.updated",
        "invoice.paid",
        "invoice.payment_failed",
    ]


async def test_subscription_update_syncs_known_customer(
    dispatcher, handlers, customer, store
):
    event = signed_event(
        make_body(
            "customer.subscription.updated",
            data={
                "object": {
                    "id": "sub_9",
                    "customer": "cus_123",
                    "status": "past_due",
                    "current_period_end": 1738411200,
                }
            },
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.ok
    assert store.subscriptions["sub_9"].status == SubscriptionStatus.PAST_DUE
    assert store.subscriptions["sub_9"] in store.saved


async def test_unknown_customer_is_skipped(dispatcher, handlers, store):
    event = signed_event(
        make_body(
            "customer.subscription.deleted",
            data={"object": {"id": "sub_9", "customer": "cus_unknown", "status": "canceled"}},
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.ok
    assert store.subscriptions == {}


async def test_invoice_paid_updates_existing_invoice(dispatcher, handlers, customer, store):
    event = signed_event(
        make_body(
            "invoice.paid",
            data={
                "object": {
                    "id": "in_1",
                    "customer": "cus_123",
                    "total": 1900,
                    "currency": "usd",
                    "status": "paid",
                    "status_transitions": {"paid_at": 1738411200},
                }
            },
        )
    )

    await dispatcher.dispatch(event)
    first = store.invoices["in_1"]
    await dispatcher.dispatch(event)

    assert len(store.invoices) == 1
    assert store.invoices["in_1"] is first
    assert first.status == InvoiceStatus.PAID


async def test_non_credit_checkout_is_ignored(dispatcher, handlers, stripe_sdk):
    event = signed_event(
        make_body(
            "checkout.session.completed",
            data={"object": {"id": "cs_1", "metadata": {"type": "subscription"}}},
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.ok
    stripe_sdk.checkout.sessions.retrieve.assert_not_called()


async def test_credit_checkout_adds_credits(
    dispatcher, handlers, stripe_sdk, customer
):
    stripe_sdk.checkout.sessions.retrieve.return_value = {
        "id": "cs_1",
        "payment_status": "paid",
        "metadata": {"credits": "25", "type": "credits_purchase"},
        "customer": {"id": "cus_123", "metadata": {"user_id": "user-1"}},
        "payment_intent": {"id": "pi_1"},
        "amount_total": 500,
        "currency": "usd",
    }
    event = signed_event(
        make_body(
            "checkout.session.completed",
            data={"object": {"id": "cs_1", "metadata": {"type": "credits_purchase"}}},
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.ok
    assert customer.credits_balance == 25


async def test_store_failure_is_reported_as_handler_failure(
    dispatcher, handlers, customer, store
):
    store.refuse_creation = True
    event = signed_event(
        make_body(
            "customer.subscription.updated",
            data={"object": {"id": "sub_9", "customer": "cus_123", "status": "active"}},
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.all_failed
    assert result.failures[0].handler.endswith(
        "BillingWebhookHandlers.subscription_changed"
    )


async def test_redelivered_credit_checkout_is_applied_once(
    dispatcher, handlers, stripe_sdk, customer, store
):
    stripe_sdk.checkout.sessions.retrieve.return_value = {
        "id": "cs_1",
        "payment_status": "paid",
        "metadata": {"credits": "25", "type": "credits_purchase"},
        "customer": {"id": "cus_123", "metadata": {"user_id": "user-1"}},
        "payment_intent": "pi_1",
        "amount_total": 500,
        "currency": "usd",
    }
    event = signed_event(
        make_body(
            "checkout.session.completed",
            data={"object": {"id": "cs_1", "metadata": {"type": "credits_purchase"}}},
        )
    )

    first = await dispatcher.dispatch(event)
    second = await dispatcher.dispatch(event)

    assert first.ok and second.ok
    assert customer.credits_balance == 25
    assert len(store.transactions) == 1
    assert store.saved.count(customer) == 1


async def test_deleted_subscription_is_cleared_from_customer(
    dispatcher, handlers, customer, store
):
    subscription = Subscription(
        id="sub-local-1",
        customer_id=customer.id,
        stripe_subscription_id="sub_9",
        status=SubscriptionStatus.ACTIVE,
    )
    customer.active_subscription = subscription
    event = signed_event(
        make_body(
            "customer.subscription.deleted",
            data={"object": {"id": "sub_9", "customer": "cus_123", "status": "canceled"}},
        )
    )

    result = await dispatcher.dispatch(event)

    assert result.ok
    assert customer.active_subscription is None
    assert customer in store.saved
    assert store.saved[0].status == SubscriptionStatus.CANCELED


async def test_updated_subscription_stays_on_customer(
    dispatcher, handlers, customer, store
):
    customer.active_subscription = Subscription(
        id="sub-local-1",
        customer_id=customer.id,
        stripe_subscription_id="sub_9",
        status=SubscriptionStatus.ACTIVE,
    )
    event = signed_event(
        make_body(
            "customer.subscription.updated",
            data={"object": {"id": "sub_9", "customer": "cus_123", "status": "past_due"}},
        )
    )

    await dispatcher.dispatch(event)

    assert customer.active_subscription.status == SubscriptionStatus.PAST_DUE
    assert customer not in store.saved
