"""FastAPI dependencies exposing the payment components built at startup."""

from fastapi import Request

from staybook.payments.gateway import StripePaymentGateway
from staybook.payments.reconciler import WebhookReconciler


def get_gateway(request: Request) -> StripePaymentGateway:
    return request.app.state.gateway


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler
