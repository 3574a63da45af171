"""JSON-RPC 2.0 framing for the MCP tool methods.

Shared by every transport (SSE, streamable HTTP, stdio): a transport hands
a decoded message to ``handle_message`` and frames whatever comes back.
``None`` means the message was a notification and nothing is sent.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from speech_relay import __version__
from speech_relay.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    TransportError,
)
from speech_relay.tools.dispatcher import ToolDispatcher

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "openai-tts-remote-server"
SERVER_CAPABILITIES: dict[str, Any] = {"tools": {}}

RequestId = str | int | None


class JsonRpcMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    method: str
    id: RequestId = None
    params: dict[str, Any] | None = None


class ToolCallParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    arguments: dict[str, Any] | None = None


def server_info() -> dict[str, Any]:
    return {"name": SERVER_NAME, "version": __version__}


def result_response(request_id: RequestId, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error_response(request_id: RequestId, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def transport_error_response(
    exc: TransportError, request_id: RequestId = None
) -> dict[str, Any]:
    return error_response(request_id, exc.code, str(exc))


def _raw_id(raw: Any) -> RequestId:
    if isinstance(raw, dict):
        value = raw.get("id")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return value
    return None


async def handle_message(
    dispatcher: ToolDispatcher, raw: Any
) -> dict[str, Any] | None:
    """Route one decoded JSON-RPC message; return the response or ``None``."""
    try:
        message = JsonRpcMessage.model_validate(raw)
    except ValidationError:
        log.warning("Rejecting malformed JSON-RPC envelope")
        return error_response(_raw_id(raw), INVALID_REQUEST, "Invalid Request")

    if message.id is None:
        log.debug("Notification received: %s", message.method)
        return None

    try:
        return await _dispatch(dispatcher, message)
    except Exception:
        log.exception("Unhandled error while processing %s", message.method)
        return error_response(message.id, INTERNAL_ERROR, "Internal error")


async def _dispatch(
    dispatcher: ToolDispatcher, message: JsonRpcMessage
) -> dict[str, Any]:
    method = message.method

    if method == "initialize":
        return result_response(
            message.id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": SERVER_CAPABILITIES,
                "serverInfo": server_info(),
            },
        )

    if method == "ping":
        return result_response(message.id, {})

    if method == "tools/list":
        tools = [d.to_wire() for d in dispatcher.list_capabilities()]
        return result_response(message.id, {"tools": tools})

    if method == "tools/call":
        try:
            params = ToolCallParams.model_validate(message.params or {})
        except ValidationError:
            return error_response(
                message.id, INVALID_PARAMS, "tools/call requires params.name"
            )
        log.info("tools/call %s (id=%s)", params.name, message.id)
        result = await dispatcher.invoke(params.name, params.arguments or {})
        return result_response(message.id, result.to_wire())

    return error_response(message.id, METHOD_NOT_FOUND, f"Unknown method: {method}")
