"""
Events controller — server-sent events for live dashboards.

Clients open `GET /api/events` (EventSource, authenticated by the
session cookie) and receive ``data_change`` events whenever a watched
row changes.  Each event is a hint to refetch, not an ordered log.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from worksync.core.security import Identity, forwarded_headers
from worksync.rbac.dependencies import require_permission
from worksync.realtime.broadcaster import broadcaster

router = APIRouter(prefix="/api", tags=["Events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/events")
async def events(
    response: Response,
    identity: Identity = Depends(require_permission("dashboard:read")),
):
    stream = broadcaster.accept_connection()
    return StreamingResponse(
        broadcaster.stream_events(stream),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, **(forwarded_headers(response) or {})},
    )
