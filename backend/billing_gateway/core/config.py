from functools import lru_cache
from typing import Any

from pydantic import SecretStr
from pydantic_settings import BaseSettings

DEFAULT_WEBHOOK_TOLERANCE = 300  # seconds
DEFAULT_MAX_BODY_SIZE = 1_048_576  # 1 MiB


class Settings(BaseSettings):
    stripe_api_key: SecretStr
    stripe_webhook_secret: SecretStr
    success_url: str
    cancel_url: str
    webhook_tolerance: int = DEFAULT_WEBHOOK_TOLERANCE
    webhook_path: str = "/stripe/webhook"
    signature_header: str = "Stripe-Signature"
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    # JSON list of plan definitions, see SubscriptionPlanConfig
    subscription_plans: list[dict[str, Any]] = []
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
