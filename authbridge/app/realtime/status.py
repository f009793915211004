"""
Status Endpoint Module

Allocates session identifiers and opens the origin-gated push channel that
an observing client keeps open while the browser runs the OAuth2 flow.

Endpoints (relative to the configured prefix):
    - POST /status              : allocate a session id
    - GET  /status/{session_id} : open the SSE channel for that id
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..models import ErrorResponse, SessionCreatedResponse
from .cors import OriginGate
from .sessions import EventSink, SessionRegistry

logger = logging.getLogger("authbridge.realtime.status")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


async def _stream_events(
    registry: SessionRegistry,
    session_id: str,
    sink: EventSink,
) -> AsyncIterator[str]:
    """
    Relay sink chunks to the client.

    Runs until the sink is closed by a dispatch or the client disconnects;
    either way the session entry is released.
    """
    try:
        async for chunk in sink.stream():
            yield chunk
    finally:
        registry.detach(session_id, sink)
        logger.debug("Status stream finished", extra={"session_id": session_id})


def build_status_router(registry: SessionRegistry, origin_gate: OriginGate) -> APIRouter:
    """
    Create the status router bound to a registry and origin gate.

    Args:
        registry: Session registry shared with the authorization flows
        origin_gate: Origin policy for the push channel

    Returns:
        APIRouter to be included under the OAuth2 prefix
    """
    router = APIRouter(tags=["status"])

    @router.post("/status", response_model=SessionCreatedResponse)
    async def create_session(request: Request) -> JSONResponse:
        """
        Allocate a session id. Nothing is registered until the channel opens.

        The origin policy only decides the CORS header here; the id is
        allocated either way.
        """
        session_id = registry.create()
        logger.info("Allocated session id", extra={"session_id": session_id})
        headers = {}
        allowed_origin = await origin_gate.resolve(request.headers.get("origin"))
        if allowed_origin:
            headers["Access-Control-Allow-Origin"] = allowed_origin
        return JSONResponse(
            content=SessionCreatedResponse(sessionId=session_id).model_dump(),
            headers=headers,
        )

    @router.get("/status", include_in_schema=False)
    @router.get("/status/", include_in_schema=False)
    async def missing_session_id() -> JSONResponse:
        return _error(400, "Missing session id")

    @router.get("/status/{session_id}")
    async def open_status_channel(request: Request, session_id: str):
        """
        Open the Server-Sent Events channel for a session.

        Responses:
            200 text/event-stream: `data: <json>` events, then `event: close`
            400: missing session id
            403: origin rejected by policy
        """
        if not session_id.strip():
            return _error(400, "Missing session id")

        request_origin = request.headers.get("origin")
        allowed_origin = await origin_gate.resolve(request_origin)
        if not allowed_origin:
            logger.warning(
                "Status channel rejected by origin policy",
                extra={"session_id": session_id, "origin": request_origin},
            )
            return _error(403, "CORS not allowed")

        sink = EventSink()
        registry.attach(session_id, sink)
        logger.info(
            "Opened status channel",
            extra={"session_id": session_id, "origin": request_origin},
        )

        return StreamingResponse(
            _stream_events(registry, session_id, sink),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "Access-Control-Allow-Origin": allowed_origin},
        )

    return router
