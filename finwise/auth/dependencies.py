"""FastAPI dependencies for authentication and authorization."""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.auth.jwt import RateLimitConfig, decode_access_token
from finwise.db import get_db
from finwise.db_models import UserModel
from finwise.models import Role, TokenData

logger = structlog.get_logger()

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Redis connection (initialized in app startup)
redis_client: Redis | None = None

# Rate limit config
rate_limit_config = RateLimitConfig()


async def get_redis() -> Redis:
    """Get Redis connection."""
    if redis_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Redis connection not available",
        )
    return redis_client


async def get_bearer_token_data(
    bearer=Depends(bearer_scheme),
) -> TokenData | None:
    """Extract and validate bearer token."""
    if not bearer:
        return None

    return decode_access_token(bearer.credentials)


async def get_current_user(
    bearer_data: TokenData | None = Depends(get_bearer_token_data),
) -> TokenData:
    """Get the authenticated user from the bearer token."""
    if bearer_data:
        return bearer_data

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_optional_user(
    bearer_data: TokenData | None = Depends(get_bearer_token_data),
) -> TokenData | None:
    """Get the current user, or None for unauthenticated requests."""
    return bearer_data


def require_role(role: Role):
    """
    Dependency factory requiring the caller to hold ``role``.

    The role is read from the database rather than the token, so a demoted
    or deleted account loses access immediately.

    Usage:
        @router.get("/endpoint", dependencies=[Depends(require_role(Role.ADMIN))])
    """

    async def role_checker(
        current_user: TokenData = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> TokenData:
        user = await db.get(UserModel, current_user.sub)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account no longer exists",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if user.role != role:
            logger.warning(
                "Role check failed",
                user_id=current_user.sub,
                required=role.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{role.value.title()} access required",
            )

        return TokenData(sub=user.id, role=user.role)

    return role_checker


require_admin = require_role(Role.ADMIN)


async def check_rate_limit(
    current_user: TokenData | None = Depends(get_optional_user),
    x_forwarded_for: str | None = Header(None),
) -> TokenData | None:
    """
    Check per-minute rate limits for the current user/IP.

    Uses Redis to track request counts.
    """
    redis = await get_redis()

    if current_user is None:
        identifier = x_forwarded_for or "unknown"
    else:
        identifier = current_user.sub

    requests_per_minute = rate_limit_config.get_limit(current_user)

    minute_key = f"ratelimit:{identifier}:minute"
    current_count = await redis.incr(minute_key)

    if current_count == 1:
        await redis.expire(minute_key, 60)

    if current_count > requests_per_minute:
        ttl = await redis.ttl(minute_key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Rate limit exceeded. Maximum {requests_per_minute} requests per minute.",
                "retry_after": ttl,
                "limit": requests_per_minute,
                "remaining": 0,
            },
            headers={"Retry-After": str(ttl)},
        )

    return current_user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
RateLimitedUser = Annotated[TokenData | None, Depends(check_rate_limit)]
AdminUser = Annotated[TokenData, Depends(require_admin)]
