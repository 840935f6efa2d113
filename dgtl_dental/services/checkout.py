"""Stripe Checkout sessions for new practice subscriptions.

One session per signup: the monthly widget subscription plus, when the
practice asked for it, a one-time installation fee. The customer is
looked up by e-mail first so a practice that abandons checkout and tries
again does not end up with duplicate Stripe customers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import stripe

from dgtl_dental.config import INSTALL_FEE_CENTS, STRIPE_SECRET_KEY, SUBSCRIPTION_PRICE_CENTS
from dgtl_dental.services.metrics import metrics
from dgtl_dental.validation import validate_email

logger = logging.getLogger(__name__)

PROVIDER_URL_PREFIX = "https://checkout.stripe.com/"
SUBSCRIPTION_PRODUCT = "DGTL Chat Widget - Monthly Subscription"
INSTALL_PRODUCT = "Professional Installation Service"


class CheckoutError(Exception):
    """Raised when a checkout session cannot be created or looks wrong."""


def is_provider_url(url: str | None) -> bool:
    """True if *url* points at the hosted Stripe checkout page."""
    if not isinstance(url, str) or not url.startswith(PROVIDER_URL_PREFIX):
        return False
    return urlparse(url).hostname == "checkout.stripe.com"


@dataclass(frozen=True)
class CheckoutSession:
    url: str
    session_id: str


class CheckoutService:
    """Creates subscription checkout sessions through the Stripe API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        price_cents: int = SUBSCRIPTION_PRICE_CENTS,
        install_fee_cents: int = INSTALL_FEE_CENTS,
    ):
        self._api_key = api_key if api_key is not None else STRIPE_SECRET_KEY
        self._price_cents = price_cents
        self._install_fee_cents = install_fee_cents

    def _line_items(self, need_install_help: bool) -> list[dict]:
        items = [
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": SUBSCRIPTION_PRODUCT,
                        "description": "AI-powered chat widget for your practice",
                    },
                    "unit_amount": self._price_cents,
                    "recurring": {"interval": "month"},
                },
                "quantity": 1,
            }
        ]
        if need_install_help:
            items.append(
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {
                            "name": INSTALL_PRODUCT,
                            "description": "One-time setup and installation assistance",
                        },
                        "unit_amount": self._install_fee_cents,
                    },
                    "quantity": 1,
                }
            )
        return items

    def _customer_id(self, email: str, practice_name: str) -> str:
        existing = stripe.Customer.list(email=email, limit=1, api_key=self._api_key)
        if existing.data:
            logger.debug("Reusing Stripe customer %s", existing.data[0].id)
            return existing.data[0].id
        customer = stripe.Customer.create(email=email, name=practice_name, api_key=self._api_key)
        logger.info("Created Stripe customer %s for %s", customer.id, practice_name)
        return customer.id

    def create_session(
        self,
        *,
        clinic_id: str,
        email: str,
        practice_name: str,
        need_install_help: bool = False,
        origin: str,
    ) -> CheckoutSession:
        """Create a subscription checkout session and return its hosted URL."""
        if not self._api_key:
            raise CheckoutError("Stripe is not configured")
        if not clinic_id or not practice_name.strip():
            raise CheckoutError("Missing required fields: clinic id or practice name")
        email = (email or "").strip().lower()
        if validate_email(email):
            raise CheckoutError("Invalid email format")

        origin = origin.rstrip("/")
        try:
            with metrics.timed("stripe", "checkout.create"):
                session = stripe.checkout.Session.create(
                    customer=self._customer_id(email, practice_name.strip()),
                    mode="subscription",
                    line_items=self._line_items(need_install_help),
                    success_url=(
                        f"{origin}/success?clinic_id={clinic_id}"
                        "&session_id={CHECKOUT_SESSION_ID}"
                    ),
                    cancel_url=f"{origin}/signup-flow?step=3&error=payment_cancelled",
                    billing_address_collection="auto",
                    customer_update={"address": "auto", "name": "auto"},
                    metadata={"clinic_id": clinic_id},
                    api_key=self._api_key,
                )
        except stripe.StripeError as exc:
            logger.error("Stripe checkout failed for %s: %s", clinic_id, exc)
            raise CheckoutError("Payment service error") from exc

        if not is_provider_url(session.url):
            logger.error("Stripe returned an unexpected checkout URL: %r", session.url)
            raise CheckoutError("Invalid checkout URL returned by payment service")

        logger.info("Checkout session %s created for %s", session.id, clinic_id)
        return CheckoutSession(url=session.url, session_id=session.id)
