from dataclasses import dataclass

from billing_gateway.core.config import Settings
from billing_gateway.schemas.billing import SubscriptionPlanConfig
from billing_gateway.services.credits import CreditService
from billing_gateway.services.customers import CustomerService
from billing_gateway.services.invoices import InvoiceService
from billing_gateway.services.plans import PlanService
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient
from billing_gateway.services.subscriptions import SubscriptionService
from billing_gateway.services.usage import UsageService


@dataclass
class BillingServices:
    client: BillingClient
    store: BillingStore
    plans: PlanService
    subscriptions: SubscriptionService
    customers: CustomerService
    invoices: InvoiceService
    credits: CreditService
    usage: UsageService

    @classmethod
    def create(
        cls,
        client: BillingClient,
        store: BillingStore,
        success_url: str,
        cancel_url: str,
    ) -> "BillingServices":
        plans = PlanService(client)
        subscriptions = SubscriptionService(
            client, plans, store, success_url, cancel_url
        )
        return cls(
            client=client,
            store=store,
            plans=plans,
            subscriptions=subscriptions,
            customers=CustomerService(client, subscriptions),
            invoices=InvoiceService(client, store),
            credits=CreditService(client, store, success_url, cancel_url),
            usage=UsageService(client),
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, store: BillingStore
    ) -> "BillingServices":
        return cls.create(
            BillingClient.from_settings(settings),
            store,
            settings.success_url,
            settings.cancel_url,
        )


def configured_plans(settings: Settings) -> list[SubscriptionPlanConfig]:
    return [SubscriptionPlanConfig(**plan) for plan in settings.subscription_plans]
