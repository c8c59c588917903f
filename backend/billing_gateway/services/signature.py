"""Webhook signature verification (Stripe v1 scheme).

The provider sends ``Stripe-Signature: t=<unix ts>,v1=<hex>[,v1=<hex>...]``.
The signed message is ``"<t>." + raw body`` and the signature is the hex
HMAC-SHA256 of that message keyed with the endpoint secret.
"""

import hashlib
import hmac
import logging
import time

from pydantic import ValidationError

from billing_gateway.core.config import DEFAULT_WEBHOOK_TOLERANCE
from billing_gateway.schemas.events import VerifiedEvent
from billing_gateway.services.errors import (
    MalformedRequestError,
    SignatureVerificationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = DEFAULT_WEBHOOK_TOLERANCE
SIGNATURE_SCHEME = "v1"


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(
        secret.encode("utf-8"), signed_payload, hashlib.sha256
    ).hexdigest()


def generate_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header for ``payload``, as the provider would."""
    if timestamp is None:
        timestamp = int(time.time())
    signature = compute_signature(payload, secret, timestamp)
    return f"t={timestamp},{SIGNATURE_SCHEME}={signature}"


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureVerificationError("Malformed signature header")
        elif key == SIGNATURE_SCHEME and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise SignatureVerificationError("Malformed signature header")
    return timestamp, signatures


def _reject(reason: str) -> SignatureVerificationError:
    logger.warning(f"Webhook signature rejected: {reason}")
    return SignatureVerificationError(reason)


def verify(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE,
) -> VerifiedEvent:
    """Verify ``payload`` against ``signature_header`` and decode it.

    ``tolerance`` is the maximum age in seconds of the signed timestamp; a
    value of zero or less disables the replay check.

    Raises MalformedRequestError if the payload or header is missing or the
    payload is not a valid event, SignatureVerificationError if the header
    cannot be parsed, no signature matches, or the timestamp is stale.
    """
    if not payload:
        raise MalformedRequestError("Missing payload")
    if not signature_header:
        raise MalformedRequestError("Missing signature header")
    if not secret:
        raise _reject("No webhook secret configured")

    try:
        timestamp, signatures = _parse_header(signature_header)
    except SignatureVerificationError as exc:
        raise _reject(str(exc))

    if tolerance > 0:
        age = time.time() - timestamp
        if age > tolerance:
            raise _reject(f"Timestamp outside tolerance ({int(age)}s old)")
        if age < -tolerance:
            raise _reject("Timestamp is in the future")

    expected = compute_signature(payload, secret, timestamp)
    expected_bytes = expected.encode("ascii")
    if not any(
        hmac.compare_digest(expected_bytes, sig.encode("utf-8")) for sig in signatures
    ):
        raise _reject("No signature matches the payload")

    try:
        return VerifiedEvent.model_validate_json(payload)
    except ValidationError:
        logger.warning("Verified webhook payload is not a valid event")
        raise MalformedRequestError("Invalid event payload")
