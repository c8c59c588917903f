import logging
from typing import Any, Mapping

from billing_gateway.schemas.billing import (
    Currency,
    Customer,
    Invoice,
    InvoiceStatus,
    from_timestamp,
)
from billing_gateway.services.errors import BillingStoreError
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient

logger = logging.getLogger(__name__)


def invoice_subscription_id(stripe_invoice: Mapping[str, Any]) -> str | None:
    subscription = stripe_invoice.get("subscription")
    if subscription is None:
        # 2025 API versions moved it under parent.subscription_details
        parent = stripe_invoice.get("parent") or {}
        subscription = (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(subscription, Mapping):
        return subscription.get("id")
    return subscription


class InvoiceService:
    def __init__(self, client: BillingClient, store: BillingStore):
        self.client = client
        self.store = store

    def retrieve_invoice(self, stripe_invoice_id: str) -> Any:
        return self.client.execute(lambda c: c.invoices.retrieve(stripe_invoice_id))

    def get_invoices_for_customer(self, customer: Customer) -> list[Any]:
        if not customer.stripe_customer_id:
            return []
        customer_id = customer.stripe_customer_id
        result = self.client.execute(
            lambda c: c.invoices.list(params={"customer": customer_id})
        )
        return list(result.get("data", []))

    def sync_invoice_from_stripe(
        self,
        customer: Customer,
        stripe_invoice: Mapping[str, Any],
        invoice: Invoice | None = None,
    ) -> Invoice:
        stripe_id = stripe_invoice["id"]
        if invoice is None:
            invoice = self.store.create_invoice(customer, stripe_invoice)
            if invoice is None:
                raise BillingStoreError(
                    f"Store did not create an invoice for {stripe_id}"
                )

        invoice.stripe_invoice_id = stripe_id
        invoice.customer_id = customer.id
        invoice.amount = stripe_invoice["total"]
        invoice.currency = Currency(stripe_invoice["currency"])
        invoice.status = InvoiceStatus(stripe_invoice["status"])

        created = from_timestamp(stripe_invoice.get("created"))
        if created is not None:
            invoice.invoice_date = created
        invoice.due_date = from_timestamp(stripe_invoice.get("due_date"))

        paid_at = (stripe_invoice.get("status_transitions") or {}).get("paid_at")
        invoice.paid_date = (
            from_timestamp(paid_at) if invoice.status == InvoiceStatus.PAID else None
        )

        subscription_id = invoice_subscription_id(stripe_invoice)
        if subscription_id:
            subscription = self.store.find_subscription(subscription_id)
            if subscription is not None:
                invoice.subscription = subscription

        return invoice

    def get_invoice_pdf_url(self, stripe_invoice_id: str) -> str | None:
        return self.retrieve_invoice(stripe_invoice_id).get("invoice_pdf")

    def send_invoice_email(self, stripe_invoice_id: str) -> None:
        self.client.execute(lambda c: c.invoices.send_invoice(stripe_invoice_id))
        logger.info(f"Sent invoice {stripe_invoice_id}")

    def pay_invoice(self, stripe_invoice_id: str) -> Any:
        return self.client.execute(lambda c: c.invoices.pay(stripe_invoice_id))
