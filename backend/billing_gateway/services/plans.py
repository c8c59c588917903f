import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from billing_gateway.schemas.billing import (
    SubscriptionPlan,
    SubscriptionPlanConfig,
)
from billing_gateway.services.errors import BillingApiError
from billing_gateway.services.store import BillingStore
from billing_gateway.services.stripe_client import BillingClient

logger = logging.getLogger(__name__)


@dataclass
class PlanSyncReport:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deactivated: list[str] = field(default_factory=list)
    # plan id -> reason
    failed: dict[str, str] = field(default_factory=dict)
    kept: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class PlanService:
    def __init__(self, client: BillingClient):
        self.client = client

    def sync_plan_to_stripe(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        """Create or update the product for ``plan`` and make sure it has a
        price matching its amount, currency and interval.

        Prices are immutable on the provider side: when the terms change a new
        price is created and the previous one is deactivated.
        """
        product = self._create_or_update_product(plan)
        plan.stripe_product_id = product["id"]

        previous_price_id = plan.stripe_price_id
        if previous_price_id and self._price_matches(plan, previous_price_id):
            return plan

        price = self._create_price(plan, product["id"])
        plan.stripe_price_id = price["id"]
        if previous_price_id:
            self.client.execute(
                lambda c: c.prices.update(previous_price_id, params={"active": False})
            )
        return plan

    def _create_or_update_product(self, plan: SubscriptionPlan) -> Any:
        product_data = {
            "name": plan.name,
            "metadata": {"plan_id": plan.id},
        }
        if plan.description:
            product_data["description"] = plan.description

        if plan.stripe_product_id:
            product_id = plan.stripe_product_id
            return self.client.execute(
                lambda c: c.products.update(product_id, params=product_data)
            )
        return self.client.execute(lambda c: c.products.create(params=product_data))

    def _price_matches(self, plan: SubscriptionPlan, price_id: str) -> bool:
        price = self.client.execute(lambda c: c.prices.retrieve(price_id))
        recurring = price.get("recurring") or {}
        return (
            bool(price.get("active"))
            and price.get("unit_amount") == plan.amount
            and price.get("currency") == plan.currency.value
            and recurring.get("interval") == plan.interval.value
        )

    def _create_price(self, plan: SubscriptionPlan, product_id: str) -> Any:
        price_data = {
            "product": product_id,
            "unit_amount": plan.amount,
            "currency": plan.currency.value,
            "recurring": {"interval": plan.interval.value},
            "metadata": {"plan_id": plan.id},
        }
        return self.client.execute(lambda c: c.prices.create(params=price_data))

    def get_plans_from_stripe(self) -> list[dict[str, Any]]:
        """Active products paired with each of their active prices."""
        products = self.client.execute(
            lambda c: c.products.list(params={"active": True})
        )
        plans = []
        for product in products.get("data", []):
            product_id = product["id"]
            prices = self.client.execute(
                lambda c: c.prices.list(params={"product": product_id, "active": True})
            )
            for price in prices.get("data", []):
                plans.append({"product": product, "price": price})
        return plans

    def deactivate_plan(self, plan: SubscriptionPlan) -> None:
        if not plan.stripe_product_id:
            return
        product_id = plan.stripe_product_id
        self.client.execute(
            lambda c: c.products.update(product_id, params={"active": False})
        )
        if plan.stripe_price_id:
            price_id = plan.stripe_price_id
            self.client.execute(
                lambda c: c.prices.update(price_id, params={"active": False})
            )

    def sync_plans(
        self, configs: Iterable[SubscriptionPlanConfig], store: BillingStore
    ) -> PlanSyncReport:
        """Bring the store and the provider in line with configured plans.

        Plans present in the store but missing from ``configs`` are
        deactivated on the provider when the store allows it.
        """
        report = PlanSyncReport()
        configs = list(configs)
        if not configs:
            logger.warning("No subscription plans found in configuration")

        existing = {plan.id: plan for plan in store.list_plans()}
        configured_ids = set()

        for config in configs:
            configured_ids.add(config.id)
            plan = existing.get(config.id)
            if plan is not None:
                plan.apply_config(config)
                store.save_plan(plan)
                outcome = report.updated
            else:
                plan = store.load_plan(config)
                if plan is None:
                    logger.warning(f"Store did not provide plan {config.id}")
                    report.failed[config.id] = "store did not provide a plan"
                    continue
                outcome = report.created

            ids_before = (plan.stripe_product_id, plan.stripe_price_id)
            try:
                self.sync_plan_to_stripe(plan)
            except BillingApiError as exc:
                report.failed[config.id] = str(exc)
                continue
            if (plan.stripe_product_id, plan.stripe_price_id) != ids_before:
                store.save_plan(plan)
            outcome.append(config.id)
            logger.info(
                f"Synced plan {plan.id} "
                f"(product={plan.stripe_product_id} price={plan.stripe_price_id})"
            )

        for plan_id, plan in existing.items():
            if plan_id in configured_ids:
                continue
            allowed, reason = store.can_delete_plan(plan)
            if not allowed:
                report.kept[plan_id] = reason or "unknown reason"
                continue
            try:
                self.deactivate_plan(plan)
            except BillingApiError as exc:
                report.failed[plan_id] = str(exc)
                continue
            report.deactivated.append(plan_id)
            logger.info(f"Deactivated plan {plan_id}")

        return report
