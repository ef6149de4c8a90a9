"""
Server-sent unread notification count.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from engagement.auth.verify import auth_dependency
from engagement.services import notification_stream as stream_service

router = APIRouter(prefix="/notifications", tags=["notifications"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/stream")
async def stream(request: Request, claims: dict = Depends(auth_dependency)):
    return StreamingResponse(
        stream_service.notification_stream.events(claims["sub"], request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
