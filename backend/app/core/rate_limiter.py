"""
Rate Limiting for the KonnectSphere API
=======================================
slowapi limiter backed by Redis (RATE_LIMIT_STORAGE_URI, defaults to REDIS_URL).

Requests are keyed by the authenticated user when a valid token is present,
otherwise by client IP. Credential endpoints carry stricter limits:
- /auth/login: 5 req/min
- /auth/register: 3 req/min
- /auth/forgot-password: 3 req/min
- /contact: 5 req/min
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
from jose import JWTError, jwt

from app.core.config import settings
from app.core.logging_config import logger


LOGIN_LIMIT = "5/minute"
REGISTER_LIMIT = "3/minute"
PASSWORD_RESET_LIMIT = "3/minute"
CONTACT_LIMIT = "5/minute"
CHECKOUT_LIMIT = "10/minute"


def _token_subject(request: Request) -> str:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    auth_header = request.headers.get("Authorization", "")
    if not token and auth_header.lower().startswith("bearer "):
        token = auth_header[7:]
    if not token:
        return ""
    try:
        payload = jwt.decode(token, settings.effective_jwt_secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return ""
    return payload.get("sub") or ""


def get_user_identifier(request: Request) -> str:
    """
    Rate limit key.

    Priority:
    1. Authenticated user id (from the JWT cookie or bearer header)
    2. Client IP address
    """
    user_id = _token_subject(request)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.rate_limit_storage,
    strategy="fixed-window",
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """429 with a Retry-After header"""
    retry_after = "60"
    limit = getattr(exc, "limit", None)
    if limit is not None and getattr(limit, "limit", None) is not None:
        retry_after = str(limit.limit.get_expiry())

    logger.warning(f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please slow down.",
            "detail": str(exc.detail),
            "retry_after_seconds": int(retry_after),
        },
        headers={"Retry-After": retry_after},
    )
