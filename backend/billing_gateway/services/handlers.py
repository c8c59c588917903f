"""Default webhook handlers keeping local billing entities in sync."""

import logging

from billing_gateway.schemas.events import VerifiedEvent
from billing_gateway.services.billing import BillingServices
from billing_gateway.services.credits import CREDITS_PURCHASE
from billing_gateway.services.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


class BillingWebhookHandlers:
    def __init__(self, services: BillingServices):
        self.services = services
        self.store = services.store

    def _customer_for(self, stripe_object):
        customer_id = stripe_object.get("customer")
        return self.store.find_customer(customer_id) if customer_id else None

    def checkout_completed(self, event: VerifiedEvent) -> None:
        session = event.object
        if (session.get("metadata") or {}).get("type") != CREDITS_PURCHASE:
            return
        self.services.credits.handle_successful_credits_payment(session["id"])

    def subscription_changed(self, event: VerifiedEvent) -> None:
        stripe_subscription = event.object
        customer = self._customer_for(stripe_subscription)
        if customer is None:
            logger.info(
                f"Skipping {event.type} for unknown customer "
                f"{stripe_subscription.get('customer')}"
            )
            return
        subscription = self.services.subscriptions.sync_subscription_from_stripe(
            customer, stripe_subscription
        )
        self.store.save_subscription(subscription)

        active = customer.active_subscription
        if (
            subscription.has_ended()
            and active is not None
            and active.stripe_subscription_id == subscription.stripe_subscription_id
        ):
            customer.active_subscription = None
            self.store.save_customer(customer)
            logger.info(
                f"Subscription {subscription.stripe_subscription_id} ended "
                f"for customer {customer.id}"
            )

    def invoice_changed(self, event: VerifiedEvent) -> None:
        stripe_invoice = event.object
        customer = self._customer_for(stripe_invoice)
        if customer is None:
            logger.info(
                f"Skipping {event.type} for unknown customer "
                f"{stripe_invoice.get('customer')}"
            )
            return
        invoice = self.services.invoices.sync_invoice_from_stripe(
            customer,
            stripe_invoice,
            self.store.find_invoice(stripe_invoice["id"]),
        )
        self.store.save_invoice(invoice)


def register_billing_handlers(
    dispatcher: EventDispatcher, services: BillingServices
) -> BillingWebhookHandlers:
    handlers = BillingWebhookHandlers(services)
    dispatcher.register("checkout.session.completed", handlers.checkout_completed)
    dispatcher.register("customer.subscription.updated", handlers.subscription_changed)
    dispatcher.register("customer.subscription.deleted", handlers.subscription_changed)
    dispatcher.register("invoice.paid", handlers.invoice_changed)
    dispatcher.register("invoice.payment_failed", handlers.invoice_changed)
    return handlers
