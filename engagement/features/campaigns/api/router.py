"""
Campaign trigger and email provider webhook routes.
"""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from engagement.auth.trigger import verify_trigger
from engagement.config import settings
from engagement.errors import NotFound, StorageUnavailable, ValidationError
from engagement.features.campaigns.jobs import registry
from engagement.features.campaigns.services.webhook import (
    SIGNATURE_HEADER,
    EmailWebhookProcessor,
    verify_signature,
)
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["campaigns"])

webhook_processor = EmailWebhookProcessor()


@router.api_route("/cron/{campaign}", methods=["GET", "POST"])
async def trigger_campaign(campaign: str, via: str = Depends(verify_trigger)):
    """Run one campaign now and report its counts."""
    try:
        name = registry.resolve_campaign(campaign)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    try:
        result = await registry.run_campaign(name)
    except Exception as e:
        logger.exception("Campaign trigger failed", campaign=name.value, via=via)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "campaign": name.value, "error": str(e)},
        )

    return {"success": True, **result.to_dict()}


@router.post("/email/webhook")
async def email_webhook(request: Request) -> dict:
    raw = await request.body()

    secret = settings.RESEND_WEBHOOK_SECRET
    if secret:
        if not verify_signature(raw, request.headers.get(SIGNATURE_HEADER), secret):
            logger.warning("Email webhook signature rejected")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    elif settings.is_production:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Webhook secret not configured")

    try:
        payload = json.loads(raw)
        event_type = await webhook_processor.handle(payload)
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except StorageUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable") from e

    return {"received": True, "event": event_type}
