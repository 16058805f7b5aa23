"""Stripe webhook handler and event processing."""

import logging
from typing import Optional

from aiohttp import web

from startupprice.config.settings import AppConfig, get_config
from startupprice.entitlements.base import EntitlementStore, UserEntitlement
from startupprice.payments.errors import (
    InvalidSignatureError,
    MissingIdentityError,
    MissingSignatureError,
)
from startupprice.payments.events import (
    AuthenticatedEvent,
    CheckoutCompleted,
    OtherEvent,
    verify_event,
)

logger = logging.getLogger(__name__)


async def process_event(
    event: AuthenticatedEvent,
    store: EntitlementStore,
) -> Optional[UserEntitlement]:
    """
    Apply an authenticated event to the entitlement store.

    A completed checkout overwrites the user's record with a premium one.
    Redelivery of the same event writes the same record again, so no
    event-id bookkeeping is needed.

    Args:
        event: Verified event
        store: Entitlement store to update

    Returns:
        The stored record, or None when the event type is ignored

    Raises:
        MissingIdentityError: If a completed checkout has no user id or email
    """
    if isinstance(event, CheckoutCompleted):
        return await _handle_checkout_completed(event, store)

    if isinstance(event, OtherEvent):
        logger.info(f"Unhandled event type: {event.event_type}")
    return None


async def _handle_checkout_completed(
    event: CheckoutCompleted,
    store: EntitlementStore,
) -> UserEntitlement:
    user_id = event.metadata_user_id
    email = event.metadata_email or event.customer_email

    if not user_id or not email:
        raise MissingIdentityError(
            f"checkout.session.completed without "
            f"{'userId' if not user_id else 'email'}",
            event_id=event.event_id,
            session_id=event.session_id,
        )

    record = await store.upsert_premium(user_id, email)
    logger.info(
        f"Premium granted: user_id={user_id}, session={event.session_id}, "
        f"event={event.event_id}"
    )
    return record


async def handle_webhook(
    payload: bytes,
    sig_header: Optional[str],
    store: EntitlementStore,
    config: Optional[AppConfig] = None,
) -> web.Response:
    """
    Verify a Stripe webhook delivery and apply it.

    Args:
        payload: Raw webhook payload bytes
        sig_header: Stripe-Signature header value
        store: Entitlement store to update
        config: Application config (defaults to the process config)

    Returns:
        aiohttp.web.Response: 200 on handled, ignored or unattributable
        events, 400 on signature failure, 500 on internal failure
    """
    config = config or get_config()

    try:
        event = verify_event(
            payload,
            sig_header,
            config.stripe_webhook_secret.get_secret_value(),
            tolerance=config.webhook_tolerance_seconds,
        )
    except MissingSignatureError as e:
        logger.error("Webhook rejected: missing Stripe-Signature header")
        return web.json_response({"error": e.public_message}, status=e.status_code)
    except InvalidSignatureError as e:
        logger.warning(f"Webhook rejected, possible forgery: {e}")
        return web.json_response({"error": e.public_message}, status=e.status_code)

    logger.info(f"Received webhook: {type(event).__name__} id={event.event_id}")

    try:
        await process_event(event, store)
    except MissingIdentityError as e:
        # Acknowledged so Stripe stops redelivering; needs manual reconciliation
        logger.error(
            f"Webhook identity missing: {e} "
            f"(event={e.event_id}, session={e.session_id})"
        )
    except Exception as e:
        logger.exception(f"Error processing webhook {event.event_id}: {e}")
        return web.json_response({"error": "Error processing webhook"}, status=500)

    return web.json_response({"received": True})
