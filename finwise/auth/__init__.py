"""Authentication package."""

from finwise.auth.dependencies import (
    AdminUser,
    CurrentUser,
    RateLimitedUser,
    check_rate_limit,
    get_current_user,
    get_optional_user,
    require_admin,
    require_role,
)
from finwise.auth.jwt import (
    RateLimitConfig,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_password_hash",
    "verify_password",
    "RateLimitConfig",
    "get_current_user",
    "get_optional_user",
    "require_role",
    "require_admin",
    "check_rate_limit",
    "AdminUser",
    "CurrentUser",
    "RateLimitedUser",
]
