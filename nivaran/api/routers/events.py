"""
SSE Events Stream.

GET /api/v1/events/stream

Client usage:
    const es = new EventSource('/api/v1/events/stream');
    es.onmessage = (e) => { const data = JSON.parse(e.data); ... };

One `escalation_recorded` event per ledger append.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from nivaran.api.deps import get_sse_manager
from nivaran.services.sse_manager import SSEManager

router = APIRouter(prefix="/api/v1/events", tags=["events"])


@router.get("/stream")
async def event_stream(sse_manager: SSEManager = Depends(get_sse_manager)):
    """SSE stream of escalation records as they are appended to the ledger."""
    return StreamingResponse(
        sse_manager.subscribe(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
