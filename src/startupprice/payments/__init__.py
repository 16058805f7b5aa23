"""Stripe checkout and webhook processing for the premium upgrade.

Checkout initiation opens a hosted Stripe session carrying the user id and
email as metadata; the webhook verifies checkout.session.completed events
and marks the user premium in the entitlement store.
"""

from startupprice.payments.checkout import (
    CheckoutProvider,
    StripeCheckoutProvider,
    start_checkout,
)
from startupprice.payments.currency import (
    convert_usd_to_brl,
    format_brl_price,
    get_usd_to_brl_rate,
)
from startupprice.payments.events import CheckoutCompleted, OtherEvent, verify_event
from startupprice.payments.webhooks import handle_webhook, process_event

__all__ = [
    "CheckoutCompleted",
    "CheckoutProvider",
    "OtherEvent",
    "StripeCheckoutProvider",
    "convert_usd_to_brl",
    "format_brl_price",
    "get_usd_to_brl_rate",
    "handle_webhook",
    "process_event",
    "start_checkout",
    "verify_event",
]
