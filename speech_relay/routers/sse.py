"""SSE transport: GET /sse push channel + POST /messages receive channel.

Protocol:
    Server → Client (event stream):
        event: endpoint   data: <absolute URL of POST /messages?sessionId=...>
        event: message    data: <JSON-RPC response>

    Client → Server (POST /messages?sessionId=...):
        <JSON-RPC request or notification>  → 202 Accepted, response on stream
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from speech_relay.config import settings
from speech_relay.errors import PARSE_ERROR, TransportError
from speech_relay.rpc.protocol import (
    error_response,
    handle_message,
    transport_error_response,
)
from speech_relay.rpc.sessions import Session, SessionRegistry
from speech_relay.tools.dispatcher import ToolDispatcher

log = logging.getLogger(__name__)

router = APIRouter()

# Strong references to deliveries still running after their 202 went out.
_inflight: set[asyncio.Task[None]] = set()


def public_endpoint(request: Request, base_path: str | None = None) -> str:
    """Absolute URL of the receive channel, honouring reverse-proxy headers."""
    prefix = settings.public_base_path if base_path is None else base_path
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    forwarded_host = request.headers.get("x-forwarded-host", "")
    scheme = forwarded_proto.split(",")[0].strip() or request.url.scheme or "http"
    host = (
        forwarded_host.split(",")[0].strip()
        or request.headers.get("host")
        or request.url.netloc
    )
    return f"{scheme}://{host}{prefix}/messages"


async def session_events(
    registry: SessionRegistry, session: Session
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE events for *session* until it is closed or preempted."""
    try:
        yield {"event": "endpoint", "data": session.endpoint}
        while True:
            message = await session.next_message()
            if message is None:
                log.info("Session %s stream ended", session.session_id)
                break
            yield {"event": "message", "data": json.dumps(message, ensure_ascii=False)}
    finally:
        await registry.close(session)


@router.get("/sse")
async def open_stream(request: Request) -> EventSourceResponse:
    registry: SessionRegistry = request.app.state.sessions
    log.info(
        "SSE stream requested (client=%s ua=%s)",
        request.client.host if request.client else "?",
        request.headers.get("user-agent", ""),
    )
    session = await registry.open(public_endpoint(request))
    return EventSourceResponse(
        session_events(registry, session),
        ping=max(1, int(settings.sse_ping_s)),
    )


async def _deliver(dispatcher: ToolDispatcher, raw: Any, session: Session) -> None:
    """Run one message and push its response onto *session*'s stream."""
    response = await handle_message(dispatcher, raw)
    if response is not None and not session.send(response):
        log.warning(
            "Dropping response id=%s: session %s closed while the call was in flight",
            response.get("id"),
            session.session_id,
        )


@router.post("/messages")
async def post_message(request: Request) -> Response:
    registry: SessionRegistry = request.app.state.sessions
    session_id = request.query_params.get("sessionId") or request.query_params.get(
        "session_id"
    )

    try:
        session = registry.resolve(session_id)
    except TransportError as exc:
        log.warning("Rejecting POST /messages: %s", exc)
        return JSONResponse(transport_error_response(exc), status_code=exc.http_status)

    try:
        raw: Any = json.loads(await request.body())
    except ValueError:
        log.warning("Rejecting POST /messages: body is not valid JSON")
        return JSONResponse(
            error_response(None, PARSE_ERROR, "Parse error"), status_code=400
        )

    task = asyncio.create_task(_deliver(request.app.state.dispatcher, raw, session))
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)
    return Response(content="Accepted", status_code=202, media_type="text/plain")
