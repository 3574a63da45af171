"""Async client for an OpenAI-compatible ``/audio/speech`` endpoint."""

from __future__ import annotations

import logging

import httpx

from speech_relay.config import settings
from speech_relay.errors import ConfigurationError, UpstreamError
from speech_relay.tts.schemas import SynthesisRequest

log = logging.getLogger(__name__)

_SPEECH_PATH = "/audio/speech"
_MAX_ERROR_EXCERPT = 200


class SpeechClient:
    """Thin async wrapper around the provider's speech synthesis API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        verify_tls: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = settings.openai_api_key if api_key is None else api_key
        self._base_url = (base_url or settings.openai_base_url).rstrip("/")
        self._timeout_s = settings.tts_timeout_s if timeout_s is None else timeout_s
        self._verify_tls = settings.tts_verify_tls if verify_tls is None else verify_tls
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def start(self) -> None:
        if self._client is not None:
            return
        if not self._verify_tls:
            log.warning(
                "TLS certificate verification is DISABLED for %s; "
                "use TTS_VERIFY_TLS=0 only for testing",
                self._base_url,
            )
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout_s, connect=5.0),
            verify=self._verify_tls,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def synthesize(self, request: SynthesisRequest) -> bytes:
        """Synthesize *request* and return the encoded audio bytes.

        Raises:
            ConfigurationError: if no API key is configured (no request is sent).
            UpstreamError: on timeout, connection failure, non-2xx status or an
                empty response body.
        """
        if not self._api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set")
        if self._client is None:
            await self.start()
        assert self._client is not None

        log.info(
            "Synthesizing %d chars (voice=%s model=%s speed=%.2f format=%s)",
            len(request.text),
            request.voice,
            request.model,
            request.speed,
            request.format,
        )
        try:
            resp = await self._client.post(
                _SPEECH_PATH,
                json=request.provider_payload(),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TimeoutException as exc:
            log.warning("Speech provider timed out after %.1fs", self._timeout_s)
            raise UpstreamError(
                f"speech provider timed out after {self._timeout_s:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            log.warning("Speech provider request failed: %s", exc)
            raise UpstreamError(f"speech provider request failed: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            log.warning(
                "Speech provider returned HTTP %d: %s", resp.status_code, message
            )
            raise UpstreamError(
                f"speech provider returned HTTP {resp.status_code}: {message}",
                status_code=resp.status_code,
            )

        audio = resp.content
        if not audio:
            raise UpstreamError("speech provider returned an empty audio body")
        return audio


def _error_message(resp: httpx.Response) -> str:
    """Pull ``error.message`` out of a provider error body, else a text excerpt."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    text = resp.text.strip()
    return text[:_MAX_ERROR_EXCERPT] or resp.reason_phrase or "unknown error"
