"""
Signed links for the email footer.

A token names one member and only opens their email preferences. It is an
HS256 JWT with a dedicated ``purpose`` claim, so a session token can never
stand in for it and the other way round.
"""

from datetime import datetime, timedelta

import jwt

from engagement.config import settings
from engagement.errors import Unauthenticated
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TOKEN_PURPOSE = "email_preferences"
_ALGORITHM = "HS256"
_DEVELOPMENT_SECRET = "development-unsubscribe-secret"


def _secret() -> str:
    secret = settings.UNSUBSCRIBE_SECRET or settings.AUTH_JWT_SECRET
    if secret:
        return secret
    if settings.is_production:
        raise RuntimeError("UNSUBSCRIBE_SECRET must be set in production")
    return _DEVELOPMENT_SECRET


def issue_token(user_id: str, now: datetime) -> str:
    """Preference-center token for ``user_id``, valid for ``UNSUBSCRIBE_TOKEN_DAYS``."""
    claims = {
        "sub": user_id,
        "purpose": TOKEN_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.UNSUBSCRIBE_TOKEN_DAYS)).timestamp()),
    }
    return jwt.encode(claims, _secret(), algorithm=_ALGORITHM)


def verify_token(token: str) -> str:
    """
    Member id carried by a footer token.

    Raises:
        Unauthenticated: Token is malformed, expired, forged or issued for something else
    """
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[_ALGORITHM],
            options={"require": ["sub", "exp", "purpose"]},
        )
    except jwt.PyJWTError as e:
        logger.info("Preference token rejected", error=str(e))
        raise Unauthenticated(f"Invalid preference token: {e}", operation="verify_token") from e

    if claims.get("purpose") != TOKEN_PURPOSE or not claims.get("sub"):
        raise Unauthenticated("Token is not a preference token", operation="verify_token")
    return claims["sub"]
