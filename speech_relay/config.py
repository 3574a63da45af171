"""Server configuration with environment variable overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv(override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def normalize_base_path(raw: str) -> str:
    """Normalize a public path prefix: ``""`` or ``"/"`` → ``""``, else ``"/x"``."""
    value = (raw or "").strip()
    if not value or value == "/":
        return ""
    if not value.startswith("/"):
        value = f"/{value}"
    return value.rstrip("/")


@dataclass(slots=True)
class Settings:
    """Relay server settings. Override any field via environment variable."""

    openai_api_key: str = os.environ.get("OPENAI_API_KEY", "")
    openai_base_url: str = os.environ.get(
        "OPENAI_BASE_URL", "https://api.openai.com/v1"
    )
    tts_timeout_s: float = float(os.environ.get("TTS_TIMEOUT_S", "30.0"))
    tts_verify_tls: bool = _env_bool("TTS_VERIFY_TLS", True)
    audio_dir: str = os.environ.get("AUDIO_DIR", "generated_audio")
    public_base_path: str = os.environ.get("PUBLIC_BASE_PATH", "")
    max_sessions: int = int(os.environ.get("MAX_SESSIONS", "1"))
    sse_ping_s: float = float(os.environ.get("SSE_PING_S", "15.0"))
    cors_origins: list[str] = field(
        default_factory=lambda: _env_list("CORS_ORIGINS", "*")
    )
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    host: str = os.environ.get("SERVER_HOST", "0.0.0.0")
    port: int = int(os.environ.get("SERVER_PORT", os.environ.get("PORT", "8080")))

    def __post_init__(self) -> None:
        self.public_base_path = normalize_base_path(self.public_base_path)
        if self.tts_timeout_s <= 0.0:
            raise ValueError("TTS_TIMEOUT_S must be > 0")
        if self.max_sessions < 1:
            raise ValueError("MAX_SESSIONS must be >= 1")
        if self.sse_ping_s <= 0.0:
            raise ValueError("SSE_PING_S must be > 0")
        if not self.openai_base_url.startswith(("http://", "https://")):
            raise ValueError("OPENAI_BASE_URL must be an http(s) URL")
        if not (0 < self.port < 65536):
            raise ValueError("SERVER_PORT must be in [1, 65535]")


settings = Settings()
