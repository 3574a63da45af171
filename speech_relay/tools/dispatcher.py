"""Tool registry and invocation router.

Three tools are exposed to remote callers:

    text_to_speech     synthesize text and store the audio
    list_audio_files   enumerate stored audio
    delete_audio_file  remove one stored file

``ToolDispatcher.invoke`` never raises: every failure is converted into an
error ``ToolResult`` by ``error_result`` so a bad call cannot take down the
session that carried it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from speech_relay.errors import (
    InvalidArgument,
    ToolError,
    UnknownCapability,
)
from speech_relay.storage.artifacts import ArtifactStore
from speech_relay.tts.schemas import (
    DEFAULT_FORMAT,
    DEFAULT_MODEL,
    DEFAULT_SPEED,
    DEFAULT_VOICE,
    FORMATS,
    MAX_SPEED,
    MIN_SPEED,
    MODELS,
    VOICES,
    SynthesisRequest,
)

log = logging.getLogger(__name__)

NO_FILES_MESSAGE = "No audio files have been generated yet."
ERROR_PREFIX = "Error: "


class Synthesizer(Protocol):
    async def synthesize(self, request: SynthesisRequest) -> bytes: ...


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolResult(BaseModel):
    """Envelope returned for every tool call."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent]
    is_error: bool = Field(default=False, alias="isError")
    error_kind: str | None = Field(default=None, exclude=True)

    @classmethod
    def text(
        cls, text: str, *, is_error: bool = False, error_kind: str | None = None
    ) -> ToolResult:
        return cls(
            content=[TextContent(text=text)], is_error=is_error, error_kind=error_kind
        )

    @property
    def first_text(self) -> str:
        return self.content[0].text if self.content else ""

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CapabilityDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


TEXT_TO_SPEECH = CapabilityDescriptor(
    name="text_to_speech",
    description="Convert text to speech using the OpenAI TTS API and store the audio file.",
    input_schema={
        "type": "object",
        "properties": {
            "text": {
                "type": "string",
                "description": "Text to convert to speech",
            },
            "voice": {
                "type": "string",
                "enum": list(VOICES),
                "default": DEFAULT_VOICE,
                "description": "Voice to use",
            },
            "model": {
                "type": "string",
                "enum": list(MODELS),
                "default": DEFAULT_MODEL,
                "description": "TTS model (tts-1: fast, tts-1-hd: high quality)",
            },
            "speed": {
                "type": "number",
                "minimum": MIN_SPEED,
                "maximum": MAX_SPEED,
                "default": DEFAULT_SPEED,
                "description": "Speech speed (0.25 ~ 4.0)",
            },
            "format": {
                "type": "string",
                "enum": list(FORMATS),
                "default": DEFAULT_FORMAT,
                "description": "Audio file format",
            },
        },
        "required": ["text"],
    },
)

LIST_AUDIO_FILES = CapabilityDescriptor(
    name="list_audio_files",
    description="List the generated audio files.",
    input_schema={"type": "object", "properties": {}},
)

DELETE_AUDIO_FILE = CapabilityDescriptor(
    name="delete_audio_file",
    description="Delete the given audio file.",
    input_schema={
        "type": "object",
        "properties": {
            "filename": {
                "type": "string",
                "description": "Name of the audio file to delete",
            },
        },
        "required": ["filename"],
    },
)


def error_result(exc: BaseException) -> ToolResult:
    """Map any failure onto an error ToolResult."""
    if isinstance(exc, ToolError):
        kind = exc.kind
        log.info("Tool call failed (%s): %s", kind, exc)
    else:
        kind = "internal_error"
        log.error("Unexpected tool failure", exc_info=exc)
    return ToolResult.text(f"{ERROR_PREFIX}{exc}", is_error=True, error_kind=kind)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


def build_request(args: dict[str, Any]) -> SynthesisRequest:
    """Validate tool arguments into a SynthesisRequest (raises InvalidArgument)."""
    text = args.get("text")
    if not isinstance(text, str) or not text.strip():
        raise InvalidArgument("No text was provided.")
    fields = {
        key: args[key]
        for key in ("voice", "model", "speed", "format")
        if args.get(key) is not None
    }
    try:
        return SynthesisRequest(text=text, **fields)
    except ValidationError as exc:
        raise InvalidArgument(_validation_message(exc)) from None


class ToolDispatcher:
    """Capability registry + router for tool calls."""

    def __init__(self, synthesizer: Synthesizer, store: ArtifactStore) -> None:
        self._synthesizer = synthesizer
        self._store = store
        self._handlers: dict[
            str,
            tuple[CapabilityDescriptor, Callable[[dict[str, Any]], Awaitable[ToolResult]]],
        ] = {
            TEXT_TO_SPEECH.name: (TEXT_TO_SPEECH, self._text_to_speech),
            LIST_AUDIO_FILES.name: (LIST_AUDIO_FILES, self._list_audio_files),
            DELETE_AUDIO_FILE.name: (DELETE_AUDIO_FILE, self._delete_audio_file),
        }

    @property
    def store(self) -> ArtifactStore:
        return self._store

    def list_capabilities(self) -> list[CapabilityDescriptor]:
        return [descriptor for descriptor, _ in self._handlers.values()]

    async def invoke(self, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        try:
            entry = self._handlers.get(name)
            if entry is None:
                raise UnknownCapability(f"Unknown tool: {name}")
            if args is None:
                args = {}
            if not isinstance(args, dict):
                raise InvalidArgument("arguments must be an object")
            _, handler = entry
            return await handler(args)
        except Exception as exc:
            return error_result(exc)

    async def _text_to_speech(self, args: dict[str, Any]) -> ToolResult:
        request = build_request(args)
        audio = await self._synthesizer.synthesize(request)
        artifact = await asyncio.to_thread(
            self._store.save, audio, request.text, request.format
        )
        return ToolResult.text(
            "Text was converted to speech successfully!\n"
            "\n"
            f"Input text: {request.text}\n"
            f"Voice: {request.voice}\n"
            f"Model: {request.model}\n"
            f"Speed: {request.speed:g}x\n"
            f"Format: {request.format}\n"
            f"Filename: {artifact.filename}\n"
            f"Size: {artifact.size_kb:.2f} KB\n"
            "The file was saved on the server."
        )

    async def _list_audio_files(self, args: dict[str, Any]) -> ToolResult:
        del args
        artifacts = await asyncio.to_thread(self._store.list)
        if not artifacts:
            return ToolResult.text(NO_FILES_MESSAGE)
        lines = [
            f"{i}. {a.filename}\n"
            f"   Size: {a.size_kb:.2f} KB\n"
            f"   Created: {a.created_at:%Y-%m-%d %H:%M:%S} UTC"
            for i, a in enumerate(artifacts, start=1)
        ]
        header = f"Generated audio files ({len(artifacts)} total)"
        return ToolResult.text(header + "\n\n" + "\n\n".join(lines))

    async def _delete_audio_file(self, args: dict[str, Any]) -> ToolResult:
        filename = args.get("filename")
        if not isinstance(filename, str) or not filename.strip():
            raise InvalidArgument("No filename was provided.")
        await asyncio.to_thread(self._store.delete, filename)
        return ToolResult.text(f"File deleted: {filename}")
