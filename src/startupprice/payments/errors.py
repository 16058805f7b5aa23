"""Billing error taxonomy.

Each error carries the HTTP status it maps to and a message that is safe to
return to the caller. Provider or internal detail never goes into
``public_message``.
"""


class BillingError(Exception):
    """Base class for classified billing failures."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class InvalidInputError(BillingError):
    """Client-fixable request error."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.public_message = message


class MissingSignatureError(BillingError):
    """Webhook arrived without a Stripe-Signature header."""

    status_code = 400
    public_message = "Missing signature"


class InvalidSignatureError(BillingError):
    """Webhook signature did not verify or the payload could not be parsed."""

    status_code = 400
    public_message = "Invalid signature"


class MissingIdentityError(BillingError):
    """Completed checkout carries no recoverable user id or email.

    The status here applies only if the error escapes to the generic error
    middleware. handle_webhook catches it and acknowledges the delivery with
    a 200 itself, so Stripe does not redeliver an unfixable payload.
    """

    status_code = 422
    public_message = "User identity not found in checkout session"

    def __init__(self, message: str, event_id: str | None = None, session_id: str | None = None):
        super().__init__(message)
        self.event_id = event_id
        self.session_id = session_id


class PaymentProviderError(BillingError):
    """Stripe call failed; original error text is logged, never returned."""

    status_code = 500
    public_message = "Error processing payment. Please try again later."
