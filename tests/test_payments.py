"""Tests for Stripe checkout initiation and webhook processing.

Covers:
1. Checkout input validation and session parameters
2. Provider error translation (no provider text reaches the client)
3. Webhook signature verification against real HMAC signatures
4. checkout.session.completed grants premium, with email fallback
5. Idempotent redelivery
6. Missing identity is acknowledged without touching the store
7. Unknown events acknowledged
"""

import json
import time
from unittest.mock import AsyncMock, Mock, patch

import pytest
import stripe

from conftest import WEBHOOK_SECRET, completed_event
from startupprice.entitlements import EntitlementStore, UserEntitlement
from startupprice.payments.checkout import (
    CheckoutRequest,
    StripeCheckoutProvider,
    start_checkout,
    validate_checkout_request,
)
from startupprice.payments.errors import (
    InvalidInputError,
    InvalidSignatureError,
    MissingIdentityError,
    MissingSignatureError,
    PaymentProviderError,
)
from startupprice.payments.events import CheckoutCompleted, OtherEvent, verify_event
from startupprice.payments.webhooks import handle_webhook, process_event


def _stripe_session(url="https://checkout.stripe.com/c/pay/cs_test_123"):
    session = Mock()
    session.id = "cs_test_123"
    session.url = url
    return session


class TestCheckoutValidation:
    """Input validation runs before any provider call."""

    def test_valid_request(self):
        request = validate_checkout_request("u1", "a@b.com")

        assert request == CheckoutRequest(user_id="u1", email="a@b.com")
        assert request.metadata == {"userId": "u1", "email": "a@b.com"}

    @pytest.mark.parametrize("user_id", [None, "", "   ", 42, ["u1"]])
    def test_invalid_user_id(self, user_id):
        with pytest.raises(InvalidInputError, match="userId"):
            validate_checkout_request(user_id, "a@b.com")

    @pytest.mark.parametrize("email", [None, "", "  ", 7])
    def test_missing_email(self, email):
        with pytest.raises(InvalidInputError, match="non-empty"):
            validate_checkout_request("u1", email)

    @pytest.mark.parametrize(
        "email",
        [
            "not-an-email",
            "a@b",
            "@b.com",
            "a@.com",
            "a b@c.com",
            "a@b@c.com",
            " a@b.com",
            "a@b.com\n",
        ],
    )
    def test_malformed_email(self, email):
        with pytest.raises(InvalidInputError, match="valid address"):
            validate_checkout_request("u1", email)

    def test_user_id_checked_before_email(self):
        with pytest.raises(InvalidInputError, match="userId"):
            validate_checkout_request("", "not-an-email")

    @pytest.mark.asyncio
    async def test_invalid_input_never_reaches_provider(self, checkout_provider):
        with pytest.raises(InvalidInputError):
            await start_checkout("u1", "not-an-email", checkout_provider)

        assert checkout_provider.requests == []


class TestStripeCheckoutProvider:
    """Checkout Session creation through the Stripe SDK."""

    @pytest.mark.asyncio
    @patch("startupprice.payments.checkout.stripe.checkout.Session.create")
    async def test_session_parameters(self, mock_create, config):
        mock_create.return_value = _stripe_session()

        url = await start_checkout("u1", "a@b.com", StripeCheckoutProvider(config))

        assert url == "https://checkout.stripe.com/c/pay/cs_test_123"
        mock_create.assert_called_once()
        kwargs = mock_create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_test_123", "quantity": 1}]
        assert kwargs["customer_email"] == "a@b.com"
        assert kwargs["client_reference_id"] == "u1"
        assert kwargs["metadata"] == {"userId": "u1", "email": "a@b.com"}
        assert kwargs["success_url"] == (
            "https://app.example.com/billing/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert kwargs["cancel_url"] == "https://app.example.com/billing/cancel"

    @pytest.mark.asyncio
    @patch("startupprice.payments.checkout.stripe.checkout.Session.create")
    async def test_stripe_error_translated(self, mock_create, config):
        mock_create.side_effect = stripe.APIConnectionError("connection reset by peer at 10.0.0.1")

        with pytest.raises(PaymentProviderError) as exc_info:
            await StripeCheckoutProvider(config).create_session(CheckoutRequest("u1", "a@b.com"))

        assert "10.0.0.1" not in exc_info.value.public_message
        assert isinstance(exc_info.value.__cause__, stripe.StripeError)

    @pytest.mark.asyncio
    @patch("startupprice.payments.checkout.stripe.checkout.Session.create")
    async def test_timeout_translated(self, mock_create, config):
        config.provider_timeout_seconds = 0.05
        mock_create.side_effect = lambda **kwargs: time.sleep(0.5)

        with pytest.raises(PaymentProviderError):
            await StripeCheckoutProvider(config).create_session(CheckoutRequest("u1", "a@b.com"))

    @pytest.mark.asyncio
    @patch("startupprice.payments.checkout.stripe.checkout.Session.create")
    async def test_session_without_url(self, mock_create, config):
        mock_create.return_value = _stripe_session(url=None)

        with pytest.raises(PaymentProviderError):
            await StripeCheckoutProvider(config).create_session(CheckoutRequest("u1", "a@b.com"))


class TestWebhookSignatureVerification:
    """Signatures are checked over the raw bytes before anything is parsed."""

    def test_valid_signature_accepted(self, sign):
        payload = completed_event({"userId": "u1", "email": "a@b.com"})

        event = verify_event(payload, sign(payload), WEBHOOK_SECRET)

        assert event == CheckoutCompleted(
            event_id="evt_test_1",
            session_id="cs_test_123",
            metadata_user_id="u1",
            metadata_email="a@b.com",
            customer_email=None,
        )

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_signature(self, header):
        with pytest.raises(MissingSignatureError):
            verify_event(b"{}", header, WEBHOOK_SECRET)

    def test_tampered_body_rejected(self, sign):
        payload = completed_event({"userId": "u1", "email": "a@b.com"})
        header = sign(payload)
        tampered = payload.replace(b'"u1"', b'"u2"')

        with pytest.raises(InvalidSignatureError):
            verify_event(tampered, header, WEBHOOK_SECRET)

    def test_wrong_secret_rejected(self, sign):
        payload = completed_event({"userId": "u1", "email": "a@b.com"})

        with pytest.raises(InvalidSignatureError):
            verify_event(payload, sign(payload, secret="whsec_other"), WEBHOOK_SECRET)

    def test_stale_timestamp_rejected(self, sign):
        payload = completed_event({"userId": "u1", "email": "a@b.com"})
        header = sign(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(InvalidSignatureError):
            verify_event(payload, header, WEBHOOK_SECRET, tolerance=300)

    def test_garbage_header_rejected(self):
        with pytest.raises(InvalidSignatureError):
            verify_event(b"{}", "not-a-signature", WEBHOOK_SECRET)

    def test_signed_non_json_rejected(self, sign):
        payload = b"definitely not json"

        with pytest.raises(InvalidSignatureError):
            verify_event(payload, sign(payload), WEBHOOK_SECRET)

    def test_signed_event_without_type_rejected(self, sign):
        payload = json.dumps({"id": "evt_1"}).encode()

        with pytest.raises(InvalidSignatureError):
            verify_event(payload, sign(payload), WEBHOOK_SECRET)

    def test_other_event_type(self, sign):
        payload = json.dumps({"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}}).encode()

        event = verify_event(payload, sign(payload), WEBHOOK_SECRET)

        assert event == OtherEvent(event_id="evt_2", event_type="invoice.paid")

    def test_customer_details_email_fallback(self, sign):
        payload = completed_event({"userId": "u1"}, customer_details_email="d@e.com")

        event = verify_event(payload, sign(payload), WEBHOOK_SECRET)

        assert event.metadata_email is None
        assert event.customer_email == "d@e.com"


class TestProcessEvent:
    """Event processor state transitions."""

    @staticmethod
    def _completed(user_id="u1", email="a@b.com", customer_email=None):
        return CheckoutCompleted(
            event_id="evt_1",
            session_id="cs_1",
            metadata_user_id=user_id,
            metadata_email=email,
            customer_email=customer_email,
        )

    @pytest.mark.asyncio
    async def test_completed_grants_premium(self, store):
        record = await process_event(self._completed(), store)

        assert record == UserEntitlement("u1", "a@b.com", True)
        assert await store.get("u1") == record

    @pytest.mark.asyncio
    async def test_metadata_email_preferred_over_customer_email(self, store):
        await process_event(self._completed(customer_email="other@b.com"), store)

        assert (await store.get("u1")).email == "a@b.com"

    @pytest.mark.asyncio
    async def test_customer_email_fallback(self, store):
        await process_event(self._completed(email=None, customer_email="c@d.com"), store)

        assert (await store.get("u1")).email == "c@d.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("times", [1, 2, 5])
    async def test_redelivery_is_idempotent(self, store, times):
        for _ in range(times):
            await process_event(self._completed(), store)

        assert await store.get("u1") == UserEntitlement("u1", "a@b.com", True)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_missing_user_id(self, store):
        with pytest.raises(MissingIdentityError) as exc_info:
            await process_event(self._completed(user_id=None), store)

        assert exc_info.value.session_id == "cs_1"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_missing_email_everywhere(self, store):
        with pytest.raises(MissingIdentityError):
            await process_event(self._completed(email=None), store)

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_other_event_ignored(self, store):
        assert await process_event(OtherEvent("evt_2", "charge.refunded"), store) is None
        assert len(store) == 0


class TestHandleWebhook:
    """handle_webhook response mapping."""

    @pytest.mark.asyncio
    async def test_happy_path(self, store, config, sign):
        payload = completed_event({"userId": "u1", "email": "a@b.com"})

        response = await handle_webhook(payload, sign(payload), store, config)

        assert response.status == 200
        assert json.loads(response.body) == {"received": True}
        assert await store.get("u1") == UserEntitlement("u1", "a@b.com", True)

    @pytest.mark.asyncio
    async def test_invalid_signature_skips_processing(self, store, config):
        with patch("startupprice.payments.webhooks.process_event") as mock_process:
            response = await handle_webhook(b"{}", "t=1,v1=bad", store, config)

        assert response.status == 400
        assert json.loads(response.body) == {"error": "Invalid signature"}
        mock_process.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_signature_skips_processing(self, store, config):
        with patch("startupprice.payments.webhooks.process_event") as mock_process:
            response = await handle_webhook(b"{}", None, store, config)

        assert response.status == 400
        assert json.loads(response.body) == {"error": "Missing signature"}
        mock_process.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_identity_acknowledged(self, store, config, sign):
        payload = completed_event({"email": "a@b.com"})

        response = await handle_webhook(payload, sign(payload), store, config)

        assert response.status == 200
        assert json.loads(response.body) == {"received": True}
        assert len(store) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "   ", "\t\n"])
    async def test_blank_user_id_treated_as_missing(self, store, config, sign, user_id):
        payload = completed_event({"userId": user_id, "email": "a@b.com"})

        response = await handle_webhook(payload, sign(payload), store, config)

        assert response.status == 200
        assert json.loads(response.body) == {"received": True}
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_store_failure_returns_500(self, config, sign):
        store = AsyncMock(spec=EntitlementStore)
        store.upsert_premium.side_effect = RuntimeError("connection refused to db-primary")
        payload = completed_event({"userId": "u1", "email": "a@b.com"})

        response = await handle_webhook(payload, sign(payload), store, config)

        assert response.status == 500
        assert b"db-primary" not in response.body
