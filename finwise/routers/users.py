"""Current-user profile endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import CurrentUser
from finwise.db import get_db
from finwise.db_models import UserModel
from finwise.models import UserCurrencyUpdate, UserProfile
from finwise.services.currency import is_valid_currency

logger = structlog.get_logger()

router = APIRouter(prefix="/user", tags=["user"])


async def load_user(db: AsyncSession, user_id: str) -> UserModel:
    """Fetch the caller's row; a token for a deleted account is a 401."""
    user = await db.get(UserModel, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account no longer exists",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.get("/profile", response_model=UserProfile, summary="Current user profile")
async def get_profile(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> UserProfile:
    user = await load_user(db, current_user.sub)
    return UserProfile.model_validate(user)


@router.put(
    "/currency",
    response_model=UserProfile,
    summary="Set default currency",
    description="Dashboard totals are converted into this currency.",
)
async def update_currency(
    payload: UserCurrencyUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> UserProfile:
    currency = payload.currency.upper()
    if not is_valid_currency(currency):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid currency code",
        )

    user = await load_user(db, current_user.sub)
    user.default_currency = currency
    await db.flush()

    logger.info("Default currency updated", user_id=user.id, currency=currency)
    return UserProfile.model_validate(user)
