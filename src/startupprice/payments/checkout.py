"""Stripe Checkout session creation for the Pro plan upgrade."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import stripe

from startupprice.config.settings import AppConfig, get_config
from startupprice.payments.errors import InvalidInputError, PaymentProviderError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


@dataclass(frozen=True)
class CheckoutRequest:
    """Validated checkout input."""

    user_id: str
    email: str

    @property
    def metadata(self) -> dict[str, str]:
        """Session metadata echoed back in checkout.session.completed."""
        return {"userId": self.user_id, "email": self.email}


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout session returned by the provider."""

    session_id: str
    url: str


def validate_checkout_request(user_id: Any, email: Any) -> CheckoutRequest:
    """
    Validate raw checkout input.

    Checks run in order: user_id, email presence, email shape.

    Raises:
        InvalidInputError: On the first failed check
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidInputError("userId is required and must be a non-empty string")
    if not isinstance(email, str) or not email.strip():
        raise InvalidInputError("email is required and must be a non-empty string")
    if not EMAIL_PATTERN.fullmatch(email):
        raise InvalidInputError("email must be a valid address")
    return CheckoutRequest(user_id=user_id, email=email)


class CheckoutProvider(ABC):
    """Payment provider able to open a hosted checkout session."""

    @abstractmethod
    async def create_session(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Open a hosted checkout session for the request.

        Raises:
            PaymentProviderError: On any provider failure
        """
        pass


class StripeCheckoutProvider(CheckoutProvider):
    """Creates subscription Checkout Sessions through the Stripe SDK."""

    def __init__(self, config: AppConfig | None = None):
        self.config = config or get_config()

    def _session_params(self, request: CheckoutRequest) -> dict[str, Any]:
        base_url = self.config.frontend_url
        return {
            "mode": "subscription",
            "line_items": [
                {
                    "price": self.config.stripe_price_id,
                    "quantity": 1,
                }
            ],
            "customer_email": request.email,
            "client_reference_id": request.user_id,
            "metadata": request.metadata,
            "success_url": f"{base_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/billing/cancel",
        }

    async def create_session(self, request: CheckoutRequest) -> CheckoutSession:
        stripe.api_key = self.config.stripe_secret_key.get_secret_value()
        timeout = self.config.provider_timeout_seconds

        try:
            # The SDK is blocking; keep it off the event loop
            session = await asyncio.wait_for(
                asyncio.to_thread(
                    stripe.checkout.Session.create,
                    **self._session_params(request),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Stripe checkout timed out after {timeout}s for user {request.user_id}"
            )
            raise PaymentProviderError() from e
        except stripe.StripeError as e:
            logger.error(
                f"Stripe checkout failed for user {request.user_id}: "
                f"{type(e).__name__}: {e}"
            )
            raise PaymentProviderError() from e

        if not session.url:
            logger.error(f"Stripe session {session.id} returned without a URL")
            raise PaymentProviderError()

        return CheckoutSession(session_id=session.id, url=session.url)


async def start_checkout(user_id: Any, email: Any, provider: CheckoutProvider) -> str:
    """
    Validate input and open a hosted checkout session.

    Does not touch the entitlement store. The user id and email ride along
    as session metadata; the webhook relies on them alone to find the user.

    Args:
        user_id: Caller-supplied user identifier
        email: Purchaser email address
        provider: Checkout provider to open the session with

    Returns:
        Hosted checkout URL to redirect the user to

    Raises:
        InvalidInputError: If user_id or email fails validation
        PaymentProviderError: If the provider call fails
    """
    request = validate_checkout_request(user_id, email)
    session = await provider.create_session(request)

    logger.info(f"Created checkout session {session.session_id} for user {request.user_id}")
    return session.url
