"""Webhook signature verification and typed Stripe events."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import stripe

from startupprice.payments.errors import InvalidSignatureError, MissingSignatureError

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class CheckoutCompleted:
    """checkout.session.completed, reduced to the fields we consume."""

    event_id: str
    session_id: Optional[str]
    metadata_user_id: Optional[str]
    metadata_email: Optional[str]
    customer_email: Optional[str]


@dataclass(frozen=True)
class OtherEvent:
    """Any event type we acknowledge without acting on."""

    event_id: str
    event_type: str


AuthenticatedEvent = Union[CheckoutCompleted, OtherEvent]


def _str_or_none(value: Any) -> Optional[str]:
    # Whitespace-only counts as absent.
    if isinstance(value, str) and value.strip():
        return value
    return None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def parse_event(data: dict) -> AuthenticatedEvent:
    """
    Build a typed event from a decoded Stripe event body.

    Raises:
        InvalidSignatureError: If the body lacks a string ``type``
    """
    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise InvalidSignatureError("Event body has no type")

    event_id = str(data.get("id") or "")
    if event_type != CHECKOUT_COMPLETED:
        return OtherEvent(event_id=event_id, event_type=event_type)

    session = _as_dict(_as_dict(data.get("data")).get("object"))
    metadata = _as_dict(session.get("metadata"))
    customer_details = _as_dict(session.get("customer_details"))

    return CheckoutCompleted(
        event_id=event_id,
        session_id=_str_or_none(session.get("id")),
        metadata_user_id=_str_or_none(metadata.get("userId")),
        metadata_email=_str_or_none(metadata.get("email")),
        customer_email=(
            _str_or_none(session.get("customer_email"))
            or _str_or_none(customer_details.get("email"))
        ),
    )


def verify_event(
    payload: bytes,
    sig_header: Optional[str],
    secret: str,
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> AuthenticatedEvent:
    """
    Authenticate a raw webhook delivery and decode it.

    The signature covers the exact request bytes, so ``payload`` must be the
    body as received. Nothing in the payload is read until the signature
    has verified.

    Args:
        payload: Raw request body
        sig_header: Stripe-Signature header value
        secret: Webhook signing secret
        tolerance: Maximum signature age in seconds

    Returns:
        CheckoutCompleted or OtherEvent

    Raises:
        MissingSignatureError: If the header is absent or blank
        InvalidSignatureError: On signature mismatch, stale timestamp,
            or an undecodable body
    """
    if not sig_header or not sig_header.strip():
        raise MissingSignatureError()

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidSignatureError("Payload is not UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(body, sig_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignatureError(str(e)) from e

    try:
        data = json.loads(body)
    except ValueError as e:
        raise InvalidSignatureError("Payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise InvalidSignatureError("Payload is not a JSON object")

    return parse_event(data)
