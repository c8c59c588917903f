import enum
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class Currency(str, enum.Enum):
    USD = "usd"
    EUR = "eur"
    GBP = "gbp"
    JPY = "jpy"
    CAD = "cad"
    AUD = "aud"
    CHF = "chf"
    CNY = "cny"
    PLN = "pln"

    @classmethod
    def _missing_(cls, value):
        # provider codes are lowercase, config files are not always
        if isinstance(value, str) and value.lower() != value:
            return cls(value.lower())
        return None


class BillingInterval(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    PAUSED = "paused"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    UNCOLLECTIBLE = "uncollectible"
    VOID = "void"


class CreditTransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    EXPIRATION = "expiration"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    GIFT = "gift"


def from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), UTC)


class _Entity(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


class Address(_Entity):
    street: str = ""
    building_number: str = ""
    additional_details: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    tax_id: str | None = None
    is_legal_entity: bool = False


class SubscriptionPlanConfig(BaseModel):
    """A plan as declared in configuration."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    amount: int = Field(..., ge=0, description="Smallest currency unit")
    currency: Currency = Currency.USD
    interval: BillingInterval = BillingInterval.MONTH
    description: str | None = None
    trial_period_days: int | None = Field(default=None, ge=0)


class SubscriptionPlan(_Entity):
    id: str
    name: str
    amount: int
    currency: Currency = Currency.USD
    interval: BillingInterval = BillingInterval.MONTH
    description: str | None = None
    trial_period_days: int | None = None
    stripe_product_id: str | None = None
    stripe_price_id: str | None = None

    @classmethod
    def from_config(cls, config: SubscriptionPlanConfig) -> "SubscriptionPlan":
        return cls(**config.model_dump())

    def apply_config(self, config: SubscriptionPlanConfig) -> None:
        for key, value in config.model_dump(exclude={"id"}).items():
            setattr(self, key, value)


class Subscription(_Entity):
    id: str
    customer_id: str
    plan: SubscriptionPlan | None = None
    stripe_subscription_id: str | None = None
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    start_date: datetime | None = None
    end_date: datetime | None = None
    trial_end_date: datetime | None = None

    def is_active(self) -> bool:
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

    def is_on_trial(self) -> bool:
        if self.status != SubscriptionStatus.TRIALING:
            return False
        return self.trial_end_date is None or self.trial_end_date > datetime.now(UTC)

    def has_ended(self) -> bool:
        return self.status in (
            SubscriptionStatus.CANCELED,
            SubscriptionStatus.INCOMPLETE_EXPIRED,
        )


class Customer(_Entity):
    """Local user mirrored as a provider customer."""

    id: str
    email: str
    name: str | None = None
    billing_address: Address | None = None
    stripe_customer_id: str | None = None
    stripe_balance: int | None = None
    stripe_balance_currency: Currency | None = None
    stripe_created_at: datetime | None = None
    active_subscription: Subscription | None = None
    credits_balance: int = Field(default=0, ge=0)


class Invoice(_Entity):
    id: str
    customer_id: str
    stripe_invoice_id: str | None = None
    subscription: Subscription | None = None
    amount: int = 0
    currency: Currency = Currency.USD
    status: InvoiceStatus = InvoiceStatus.DRAFT
    invoice_date: datetime | None = None
    due_date: datetime | None = None
    paid_date: datetime | None = None

    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID


class CreditTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_id: str
    type: CreditTransactionType
    credits: int
    description: str
    reference_id: str | None = None
    amount: int | None = None
    currency: Currency | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
