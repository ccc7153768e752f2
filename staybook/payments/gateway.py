"""Async Stripe adapter: payment intents and webhook signature verification.

Amounts cross this boundary as Decimal major currency units and are
converted to Stripe's integer minor units here and nowhere else.
"""

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from stripe import StripeClient

from staybook.config import Settings
from staybook.errors import AuthenticationFailure, PaymentGatewayError, ValidationError
from staybook.models.booking import Booking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    external_ref: str
    client_secret: str | None


@dataclass(frozen=True)
class GatewayEvent:
    """The parts of a verified gateway event the reconciler needs."""

    id: str
    type: str
    payment_ref: str | None


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def idempotency_key_for(booking: Booking) -> str:
    return f"booking-{booking.id}"


class StripePaymentGateway:
    """Narrow create/update/cancel/verify interface over Stripe payment intents."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        currency: str = "inr",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._currency = currency
        self._timeout = timeout_seconds
        self._client: StripeClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripePaymentGateway":
        return cls(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.payment_currency,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
        )

    @property
    def client(self) -> StripeClient:
        """StripeClient with async HTTP support, created on first use."""
        if self._client is None:
            self._client = StripeClient(self._secret_key, http_client=stripe.HTTPXClient())
        return self._client

    async def _call(self, description: str, request: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(request, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Stripe call timed out: %s", description)
            raise PaymentGatewayError(f"Payment gateway timed out while trying to {description}") from e
        except stripe.StripeError as e:
            logger.warning("Stripe call failed: %s (%s)", description, e)
            raise PaymentGatewayError(f"Payment gateway could not {description}") from e

    async def open_intent(self, booking: Booking) -> PaymentIntent:
        """Create the payment intent for a booking.

        The booking id is the idempotency key, so retrying after a transient
        failure returns the same intent instead of opening a second one.
        """
        logger.info("Opening payment intent for booking %s (%s %s)", booking.id, booking.total, self._currency)
        try:
            intent = await self._call(
                "open a payment intent",
                self.client.v1.payment_intents.create_async(
                    params={
                        "amount": to_minor_units(booking.total),
                        "currency": self._currency,
                        "automatic_payment_methods": {"enabled": True},
                        "metadata": {
                            "booking_id": str(booking.id),
                            "property_id": str(booking.property_id),
                            "guest_id": str(booking.guest_id),
                            "check_in": booking.check_in.isoformat(),
                            "check_out": booking.check_out.isoformat(),
                            "nights": str(booking.nights),
                            "guest_count": str(booking.guest_count),
                        },
                    },
                    options={"idempotency_key": idempotency_key_for(booking)},
                ),
            )
        except PaymentGatewayError as e:
            e.booking_id = booking.id
            raise
        logger.info("Opened payment intent %s for booking %s", intent.id, booking.id)
        return PaymentIntent(external_ref=intent.id, client_secret=intent.client_secret)

    async def update_intent_amount(self, external_ref: str, amount: Decimal) -> None:
        logger.info("Updating payment intent %s amount to %s", external_ref, amount)
        await self._call(
            "update the payment amount",
            self.client.v1.payment_intents.update_async(
                external_ref,
                params={"amount": to_minor_units(amount)},
            ),
        )

    async def cancel_intent(self, external_ref: str) -> None:
        logger.info("Cancelling payment intent %s", external_ref)
        await self._call(
            "cancel the payment intent",
            self.client.v1.payment_intents.cancel_async(external_ref),
        )

    def verify_event(self, payload: bytes, sig_header: str) -> GatewayEvent:
        """Verify the ``Stripe-Signature`` header and extract the event.

        Raises:
            AuthenticationFailure: missing secret, missing or bad signature.
            ValidationError: the signed payload is not a usable event.
        """
        if not self._webhook_secret:
            logger.error("Webhook secret is not configured; rejecting event")
            raise AuthenticationFailure("Webhook signature cannot be verified")

        try:
            event = stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed")
            raise AuthenticationFailure("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("Invalid webhook payload")
            raise ValidationError("Invalid webhook payload") from e

        try:
            data_object = event["data"]["object"]
            return GatewayEvent(id=event["id"], type=event["type"], payment_ref=data_object["id"])
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationError("Webhook event is missing id, type or data.object") from e
