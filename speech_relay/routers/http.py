"""Streamable-HTTP transport and discovery documents.

POST /mcp/v1/messages answers each JSON-RPC request in the HTTP response
body, so it needs no session. GET variants describe the server.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from speech_relay.errors import PARSE_ERROR
from speech_relay.rpc.protocol import (
    PROTOCOL_VERSION,
    SERVER_CAPABILITIES,
    error_response,
    handle_message,
    server_info,
)

log = logging.getLogger(__name__)

router = APIRouter()

MESSAGES_PATH = "/mcp/v1/messages"
DESCRIPTION = "OpenAI TTS Remote MCP Server"


def discovery_document(**extra: Any) -> dict[str, Any]:
    info = server_info()
    doc: dict[str, Any] = {
        "name": info["name"],
        "version": info["version"],
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": SERVER_CAPABILITIES,
        "auth": {"type": "none"},
        "description": DESCRIPTION,
    }
    doc.update(extra)
    return doc


_HTTP_TRANSPORT = {"type": "http", "endpoint": MESSAGES_PATH}


@router.get(MESSAGES_PATH)
async def describe_messages_endpoint() -> dict[str, Any]:
    return discovery_document(
        transport=_HTTP_TRANSPORT,
        description=f"{DESCRIPTION} - use POST for MCP messages",
    )


@router.get("/.well-known/mcp")
async def well_known() -> dict[str, Any]:
    return discovery_document(transport=_HTTP_TRANSPORT)


@router.get("/mcp/v1/server-info")
async def server_info_endpoint() -> dict[str, Any]:
    return discovery_document()


@router.post(MESSAGES_PATH)
async def post_http_message(request: Request) -> Response:
    try:
        raw: Any = json.loads(await request.body())
    except ValueError:
        log.warning("Rejecting %s: body is not valid JSON", MESSAGES_PATH)
        return JSONResponse(
            error_response(None, PARSE_ERROR, "Parse error"), status_code=400
        )

    response = await handle_message(request.app.state.dispatcher, raw)
    if response is None:
        return Response(status_code=202)
    return JSONResponse(response)
