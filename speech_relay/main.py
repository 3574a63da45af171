"""Relay server entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from speech_relay import __version__
from speech_relay.config import settings
from speech_relay.routers.http import DESCRIPTION, MESSAGES_PATH
from speech_relay.routers.http import router as http_router
from speech_relay.routers.sse import router as sse_router
from speech_relay.rpc.protocol import PROTOCOL_VERSION, SERVER_CAPABILITIES, SERVER_NAME
from speech_relay.rpc.sessions import SessionRegistry
from speech_relay.storage.artifacts import ArtifactStore
from speech_relay.tools.dispatcher import ToolDispatcher
from speech_relay.tts.client import SpeechClient

log = logging.getLogger(__name__)

AUDIO_PREFIX = "/audio"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the speech client and wire dispatcher + session registry."""
    store = ArtifactStore(settings.audio_dir)
    store.ensure_ready()
    client = SpeechClient()
    await client.start()
    if not client.configured:
        log.warning("OPENAI_API_KEY is not set; text_to_speech calls will fail")

    app.state.speech_client = client
    app.state.dispatcher = ToolDispatcher(client, store)
    app.state.sessions = SessionRegistry(settings.max_sessions)
    log.info(
        "Relay ready (audio_dir=%s public_base_path=%r max_sessions=%d)",
        store.directory,
        settings.public_base_path,
        settings.max_sessions,
    )

    yield

    await client.close()


app = FastAPI(
    title="Speech Relay MCP Server",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(sse_router)
app.include_router(http_router)
app.mount(
    AUDIO_PREFIX,
    StaticFiles(directory=settings.audio_dir, check_dir=False),
    name="audio",
)


@app.get("/health")
async def health():
    """Liveness check."""
    sessions = getattr(app.state, "sessions", None)
    client = getattr(app.state, "speech_client", None)
    return {
        "status": "healthy",
        "server": SERVER_NAME,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tts_configured": bool(client is not None and client.configured),
        "sessions": sessions.snapshot() if sessions is not None else None,
    }


@app.get("/")
async def root():
    """Discovery document listing the public endpoints."""
    return {
        "name": SERVER_NAME,
        "version": __version__,
        "description": DESCRIPTION,
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": SERVER_CAPABILITIES,
        "transport": {"type": "http", "endpoint": MESSAGES_PATH},
        "endpoints": {
            "health": "/health",
            "sse": "/sse",
            "messages": MESSAGES_PATH,
            "serverInfo": "/mcp/v1/server-info",
            "audio": f"{AUDIO_PREFIX}/",
        },
        "authentication": "none",
    }


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    )
    uvicorn.run(
        "speech_relay.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
