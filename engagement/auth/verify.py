"""
verify.py
---------
Purpose:
    Bearer JWT verification for member-facing routes.

Notes:
    - ES256 keys from a JWKS endpoint when AUTH_JWKS_URL is set (cached by PyJWKClient).
    - HS256 shared secret (AUTH_JWT_SECRET) otherwise.
    - `auth_dependency` returns the decoded claims; the member id is `sub`.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from engagement.config import settings
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_jwk_client: PyJWKClient | None = None
_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _get_jwk_client() -> PyJWKClient:
    global _jwk_client
    if _jwk_client is None:
        _jwk_client = PyJWKClient(settings.AUTH_JWKS_URL)
    return _jwk_client


def verify_jwt(token: str) -> dict:
    try:
        if settings.AUTH_JWKS_URL:
            signing_key = _get_jwk_client().get_signing_key_from_jwt(token)
            key, algorithms = signing_key.key, ["ES256"]
        elif settings.AUTH_JWT_SECRET:
            key, algorithms = settings.AUTH_JWT_SECRET, ["HS256"]
        else:
            logger.error("No JWT verification key configured")
            raise _unauthorized("Authentication is not configured")

        decoded = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=settings.AUTH_AUDIENCE,
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e

    if not decoded.get("sub"):
        raise _unauthorized("Token has no subject")
    return decoded


def auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing bearer token")
    return verify_jwt(credentials.credentials)
