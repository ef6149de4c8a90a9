"""
Email preference routes.

- `GET /email/preferences` and `PUT /email/preferences` read and change the
  caller's settings.
- `POST /email/unsubscribe` carries out a footer-link action.

The caller is identified by the signed ``token`` from an email footer or,
from the app, by the usual bearer JWT.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from engagement.auth.verify import verify_jwt
from engagement.errors import NotFound, StorageUnavailable, Unauthenticated, ValidationError
from engagement.features.campaigns.services.preference_center import PreferenceCenter, UnsubscribeAction
from engagement.features.campaigns.services.unsubscribe import verify_token
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.api.engagement_request import EmailPreferencesUpdate, UnsubscribeRequest
from engagement.models.api.engagement_response import EmailPreferencesResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/email", tags=["email-preferences"])

preference_center = PreferenceCenter()

_bearer = HTTPBearer(auto_error=False)


def preference_member(
    token: str | None = Query(None, description="Signed token from an email footer"),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    """Member whose preferences the request may touch."""
    if token:
        try:
            return verify_token(token)
        except Unauthenticated as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired link") from e
    if credentials and credentials.credentials:
        return verify_jwt(credentials.credentials)["sub"]
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _respond(values: dict[str, bool]) -> EmailPreferencesResponse:
    return EmailPreferencesResponse(**values)


async def _guarded(call):
    try:
        return await call
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except StorageUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable"
        ) from e


@router.get("/preferences", response_model=EmailPreferencesResponse)
async def get_preferences(user_id: str = Depends(preference_member)):
    return _respond(await _guarded(preference_center.get(user_id)))


@router.put("/preferences", response_model=EmailPreferencesResponse)
async def update_preferences(body: EmailPreferencesUpdate, user_id: str = Depends(preference_member)):
    return _respond(await _guarded(preference_center.update(user_id, body.groups())))


@router.post("/unsubscribe", response_model=EmailPreferencesResponse)
async def unsubscribe(body: UnsubscribeRequest, user_id: str = Depends(preference_member)):
    groups = body.preferences.groups() if body.preferences else None
    result = await _guarded(
        preference_center.apply(user_id, UnsubscribeAction(body.action), category=body.category, groups=groups)
    )
    logger.info("Unsubscribe handled", user_id=user_id, action=body.action)
    return _respond(result)
