from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class InboundWebhookRequest:
    """Raw webhook delivery, exactly as received over HTTP."""

    payload: bytes
    signature_header: str | None
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class VerifiedEvent(BaseModel):
    """Provider event whose signature has been checked.

    Only built by ``services.signature.verify``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Provider event ID")
    type: str = Field(..., min_length=1, description="Dot-delimited event type")
    data: dict[str, Any] = Field(default_factory=dict)
    created: int | None = None
    livemode: bool = False
    api_version: str | None = None

    @property
    def object(self) -> dict[str, Any]:
        """The provider object carried by the event (``data.object``)."""
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else {}
