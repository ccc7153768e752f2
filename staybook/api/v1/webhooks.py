"""Stripe webhook endpoint: receives payment events and hands them to the reconciler."""

import logging

from fastapi import APIRouter, Depends, Request

from staybook.api.deps import get_reconciler
from staybook.payments.reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
) -> dict[str, str]:
    """Acknowledge an event once it is recorded.

    Only a failed signature check is answered with an error; events that are
    duplicates, unmatched, anomalous or whose side effects failed are all
    acknowledged so the gateway stops redelivering them.
    """
    # Raw bytes are required for signature verification
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    outcome = await reconciler.ingest(payload, sig_header)
    return {"status": outcome.value}
