"""Account registration and token issuance."""

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth import create_access_token, get_password_hash, verify_password
from finwise.config import get_settings
from finwise.db import get_db
from finwise.db_models import UserModel
from finwise.models import LoginRequest, Role, Token, UserRegister
from finwise.services.subscriptions import SubscriptionRepository

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_token(user: UserModel) -> Token:
    settings = get_settings()
    expires = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_access_token(
        {"sub": user.id, "role": Role(user.role).value}, expires_delta=expires
    )
    return Token(access_token=token, expires_in=int(expires.total_seconds()))


@router.post(
    "/register",
    response_model=Token,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def register(
    payload: UserRegister,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Create a USER account with a FREE subscription and return a token."""
    email = payload.email.lower()
    existing = await db.execute(select(UserModel).where(UserModel.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user = UserModel(
        email=email,
        name=payload.name,
        password_hash=get_password_hash(payload.password),
        role=Role.USER,
    )
    db.add(user)
    await db.flush()
    await SubscriptionRepository(db).get_or_create(user.id)

    logger.info("User registered", user_id=user.id)
    return _issue_token(user)


@router.post(
    "/token",
    response_model=Token,
    summary="Log in",
    description="Exchange email and password for a bearer token.",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> Token:
    result = await db.execute(
        select(UserModel).where(UserModel.email == payload.email.lower())
    )
    user = result.scalar_one_or_none()

    if user is None or not user.password_hash or not verify_password(
        payload.password, user.password_hash
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _issue_token(user)
