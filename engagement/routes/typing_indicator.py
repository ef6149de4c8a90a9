"""
Typing indicator endpoint.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from engagement.auth.verify import auth_dependency
from engagement.errors import StorageUnavailable
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.api.engagement_request import TypingRequest
from engagement.models.api.engagement_response import SuccessResponse
from engagement.repositories.match_repository import MatchRepository
from engagement.services import pubsub_service

router = APIRouter(tags=["typing"])
logger = get_logger(__name__)


@router.post("/typing", response_model=SuccessResponse)
async def typing(body: TypingRequest, claims: dict = Depends(auth_dependency)):
    """Broadcast a typing change to the conversation and the other participant."""
    user_id = claims.get("sub")

    try:
        match = await MatchRepository.get_match(body.match_id)
    except StorageUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable"
        ) from e

    # Non-participants get the same answer as a missing match
    if match is None or match.other_participant(user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Match not found")

    receivers = await pubsub_service.pubsub_bus.publish_typing(match, user_id, body.is_typing)
    logger.debug("Typing published", match_id=match.id, user_id=user_id, receivers=receivers)
    return SuccessResponse()
