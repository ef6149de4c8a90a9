"""
presence.py
-----------
Purpose:
    Heartbeat and presence query endpoints.

    - `POST /presence/heartbeat` marks the caller online.
    - `GET /presence?ids=a,b` returns online flag and last-seen text per id;
      without ids it returns how many members are online right now.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from engagement.auth.verify import auth_dependency
from engagement.errors import StorageUnavailable, Unauthenticated
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.api.engagement_response import (
    OnlineCountResponse,
    PresenceBatchResponse,
    PresenceStatusResponse,
    SuccessResponse,
)
from engagement.services import presence_service

router = APIRouter(prefix="/presence", tags=["presence"])
logger = get_logger(__name__)

MAX_IDS_PER_QUERY = 100


@router.post("/heartbeat", response_model=SuccessResponse)
async def heartbeat(claims: dict = Depends(auth_dependency)):
    try:
        await presence_service.presence_tracker.touch(claims.get("sub"))
    except Unauthenticated as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
    except StorageUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Presence unavailable"
        ) from e
    return SuccessResponse()


@router.get("", response_model=PresenceBatchResponse | OnlineCountResponse)
async def presence(
    ids: str | None = Query(None, description="Comma separated user ids"),
    claims: dict = Depends(auth_dependency),
):
    user_ids = [uid.strip() for uid in (ids or "").split(",") if uid.strip()]

    if not user_ids:
        try:
            count = await presence_service.presence_tracker.online_count()
        except StorageUnavailable as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Presence unavailable"
            ) from e
        return OnlineCountResponse(online_count=count)

    if len(user_ids) > MAX_IDS_PER_QUERY:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"At most {MAX_IDS_PER_QUERY} ids per query",
        )

    statuses = await presence_service.presence_tracker.safe_status_for(user_ids)
    return PresenceBatchResponse(
        {
            uid: PresenceStatusResponse(is_online=s.is_online, last_seen_text=s.last_seen_text)
            for uid, s in statuses.items()
        }
    )
