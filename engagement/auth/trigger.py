"""
Authorization for scheduler triggers.

A trigger is accepted when it carries ``Authorization: Bearer <CRON_SECRET>``.
A request without an Authorization header is accepted when its scheduler
identity header carries ``TRIGGER_IDENTITY_VALUE``. Outside production, with
no expected value configured, the identity header alone is enough, as is a
bare request when no secret is configured. A wrong bearer is always refused.
"""

import hmac

from fastapi import HTTPException, Request, status

from engagement.config import settings
from engagement.errors import Unauthorized
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _matches(given: str, expected: str) -> bool:
    # compare_digest refuses non-ASCII str, so compare the encoded bytes
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def authorize_trigger(
    authorization: str | None,
    identity: str | None,
    secret: str | None = None,
    expected_identity: str | None = None,
    is_production: bool | None = None,
) -> str:
    """
    Decide whether a trigger may run.

    Args:
        authorization: Raw Authorization header, if any
        identity: Value of the scheduler identity header, None when absent
        secret: Expected bearer token, defaults to ``CRON_SECRET``
        expected_identity: Expected identity header value, defaults to ``TRIGGER_IDENTITY_VALUE``
        is_production: Defaults to the configured environment

    Returns:
        How the trigger was authorized: ``secret``, ``scheduler`` or ``open``

    Raises:
        Unauthorized: The trigger must not run
    """
    secret = settings.CRON_SECRET if secret is None else secret
    expected_identity = settings.TRIGGER_IDENTITY_VALUE if expected_identity is None else expected_identity
    is_production = settings.is_production if is_production is None else is_production

    if authorization:
        scheme, _, token = authorization.partition(" ")
        if secret and scheme.lower() == "bearer" and _matches(token.strip(), secret):
            return "secret"
        raise Unauthorized("Invalid trigger credentials", operation="authorize_trigger")

    if identity is not None:
        if expected_identity:
            if _matches(identity, expected_identity):
                return "scheduler"
            raise Unauthorized("Invalid scheduler identity", operation="authorize_trigger")
        if not is_production:
            return "scheduler"

    if not secret and not is_production:
        return "open"
    raise Unauthorized("Missing trigger credentials", operation="authorize_trigger")


def verify_trigger(request: Request) -> str:
    """FastAPI dependency wrapper around ``authorize_trigger``."""
    try:
        via = authorize_trigger(
            request.headers.get("authorization"),
            request.headers.get(settings.TRIGGER_IDENTITY_HEADER),
        )
    except Unauthorized as e:
        logger.warning("Trigger refused", path=request.url.path, reason=str(e))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from e
    logger.debug("Trigger authorized", via=via, path=request.url.path)
    return via
