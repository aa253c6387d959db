"""Authentication helpers for JWT access tokens and password hashing."""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from finwise.config import get_settings
from finwise.models import Role, TokenData

# Password hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def create_access_token(
    data: dict,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Token payload data (``sub`` and ``role``)
        expires_delta: Token expiration time

    Returns:
        Encoded JWT token
    """
    settings = get_settings()

    to_encode = data.copy()
    expire = datetime.now(UTC) + (
        expires_delta
        or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.secret_key.get_secret_value(),
        algorithm=settings.algorithm,
    )


def decode_access_token(token: str) -> TokenData | None:
    """
    Decode and validate a JWT access token.

    Returns:
        TokenData if valid, None if invalid or expired
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[settings.algorithm],
        )
        user_id: str | None = payload.get("sub")
        role: str = payload.get("role", Role.USER.value)

        if user_id is None:
            return None

        return TokenData(sub=user_id, role=Role(role))
    except (JWTError, ValueError):
        return None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


class RateLimitConfig:
    """Requests-per-minute limits per caller class."""

    def __init__(self) -> None:
        """Initialize rate limits from settings."""
        settings = get_settings()

        self.limits = {
            "anonymous": settings.anonymous_requests_per_minute,
            Role.USER: settings.user_requests_per_minute,
            Role.ADMIN: settings.admin_requests_per_minute,
        }

    def get_limit(self, user: TokenData | None) -> int:
        """Requests per minute allowed for ``user`` (None for anonymous)."""
        if user is None:
            return self.limits["anonymous"]
        return self.limits.get(user.role, self.limits[Role.USER])
