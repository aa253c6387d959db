"""Billing endpoints: checkout, customer portal and Stripe webhook receiver.

Endpoints:
- POST /billing/checkout : create a Stripe Checkout session for the PRO plan
- POST /billing/portal   : create a Stripe customer portal session
- POST /billing/webhook  : Stripe webhook receiver (signature required)
"""

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.db import get_db
from finwise.models import CheckoutResponse, WebhookAck
from finwise.routers.users import load_user
from finwise.services.billing import (
    BillingNotConfiguredError,
    BillingService,
    InvalidWebhookPayloadError,
    NoBillingAccountError,
    StripeGateway,
    WebhookSignatureError,
    get_stripe_gateway,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/billing", tags=["billing"])


def get_billing_service(
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> BillingService:
    return BillingService(db, gateway)


def _not_configured(e: BillingNotConfiguredError) -> HTTPException:
    logger.error("Billing not configured", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Billing is not configured",
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Start PRO checkout",
)
async def create_checkout(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service),
) -> CheckoutResponse:
    user = await load_user(db, current_user.sub)
    try:
        url = await billing.create_checkout_session(user)
    except BillingNotConfiguredError as e:
        raise _not_configured(e) from e
    return CheckoutResponse(url=url)


@router.post(
    "/portal",
    response_model=CheckoutResponse,
    summary="Open the billing portal",
)
async def create_portal(
    current_user: CurrentUser,
    billing: BillingService = Depends(get_billing_service),
) -> CheckoutResponse:
    try:
        url = await billing.create_portal_session(current_user.sub)
    except NoBillingAccountError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except BillingNotConfiguredError as e:
        raise _not_configured(e) from e
    return CheckoutResponse(url=url)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Stripe webhook receiver",
    description="Verifies `Stripe-Signature` and applies the event to the matching subscription.",
)
async def webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    billing: BillingService = Depends(get_billing_service),
) -> WebhookAck:
    body = await request.body()

    try:
        result = await billing.handle_webhook(body, stripe_signature)
    except (WebhookSignatureError, InvalidWebhookPayloadError) as e:
        logger.warning("Webhook rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except BillingNotConfiguredError as e:
        raise _not_configured(e) from e

    logger.info("Webhook processed", **result)
    return WebhookAck(received=True)
