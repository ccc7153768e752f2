"""Tests for the Stripe webhook endpoint."""

import pytest
from httpx import AsyncClient

from staybook.models.booking import Booking, BookingStatus
from staybook.models.webhook_event import ProcessedWebhookEvent

pytestmark = pytest.mark.asyncio

URL = "/api/v1/webhooks/stripe"


class TestStripeWebhook:
    """POST /api/v1/webhooks/stripe"""

    async def test_bad_signature_rejected(self, client: AsyncClient, signed_webhook, count_rows):
        payload, headers = signed_webhook("payment_intent.succeeded", "pi_test_1")
        headers["stripe-signature"] = "t=1,v1=0000"
        response = await client.post(URL, content=payload, headers=headers)
        assert response.status_code == 401
        assert response.json()["code"] == "authentication_failed"
        assert await count_rows(ProcessedWebhookEvent) == 0

    async def test_missing_signature_rejected(self, client: AsyncClient, signed_webhook):
        payload, _ = signed_webhook("payment_intent.succeeded", "pi_test_1")
        response = await client.post(URL, content=payload, headers={"content-type": "application/json"})
        assert response.status_code == 401

    async def test_unmatched_event_acknowledged(self, client: AsyncClient, signed_webhook):
        payload, headers = signed_webhook("payment_intent.succeeded", "pi_test_unknown")
        response = await client.post(URL, content=payload, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    async def test_payment_failure_cancels(self, client: AsyncClient, make_booking, signed_webhook, fetch):
        booking = await make_booking(external_ref="pi_test_declined")
        payload, headers = signed_webhook("payment_intent.payment_failed", "pi_test_declined")
        response = await client.post(URL, content=payload, headers=headers)
        assert response.json() == {"status": "processed"}
        assert (await fetch(Booking, booking.id)).status is BookingStatus.CANCELLED

    async def test_anomaly_acknowledged(self, client: AsyncClient, make_booking, signed_webhook, fetch):
        booking = await make_booking(status=BookingStatus.CANCELLED, external_ref="pi_test_late")
        payload, headers = signed_webhook("payment_intent.succeeded", "pi_test_late")
        response = await client.post(URL, content=payload, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"status": "anomaly"}
        assert (await fetch(Booking, booking.id)).status is BookingStatus.CANCELLED
