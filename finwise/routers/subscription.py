"""Subscription read/write endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.db import get_db
from finwise.models import SubscriptionResponse, SubscriptionUpdate
from finwise.services.subscriptions import StripeIdConflictError, SubscriptionRepository

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get(
    "",
    response_model=SubscriptionResponse,
    summary="Current subscription",
    description="Returns the caller's subscription, creating a FREE one if none exists.",
)
async def get_subscription(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionResponse:
    sub = await SubscriptionRepository(db).get_or_create(current_user.sub)
    return SubscriptionResponse.model_validate(sub)


@router.put(
    "",
    response_model=SubscriptionResponse,
    summary="Replace subscription fields",
)
async def put_subscription(
    payload: SubscriptionUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionResponse:
    try:
        sub = await SubscriptionRepository(db).replace(current_user.sub, payload)
    except StripeIdConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return SubscriptionResponse.model_validate(sub)
