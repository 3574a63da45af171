"""File-backed store for synthesized audio artifacts.

Every artifact is a single file in one flat directory. Filenames follow the
``tts_<timestamp>_<preview>.<format>`` scheme so existing clients that parse
them keep working; a numeric suffix is appended only when that name is
already taken, so uniqueness does not depend on clock resolution.

Writes go to a uniquely named hidden ``.part`` file first and are then
hard-linked under the final name, which fails with ``FileExistsError`` if the
name is taken. Concurrent saves therefore never share a temp file or
overwrite each other, and a crash mid-write never leaves a truncated file
under an audio extension.

The preview is cut at 30 UTF-16 code units, and each unit outside
``[A-Za-z0-9가-힣]`` becomes ``_``. A character outside the BMP, such as an
emoji, therefore becomes ``__``. Names match those of the JavaScript
implementation that first used this scheme.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from speech_relay.errors import InvalidArgument, NotFound
from speech_relay.tts.schemas import FORMATS

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS: tuple[str, ...] = tuple(f".{fmt}" for fmt in FORMATS)
PREVIEW_UNITS = 30

_UNSAFE_PREVIEW_CHARS = re.compile(r"[^a-zA-Z0-9가-힣]")


@dataclass(frozen=True, slots=True)
class Artifact:
    filename: str
    path: Path
    size_bytes: int
    created_at: datetime

    @property
    def size_kb(self) -> float:
        return self.size_bytes / 1024


def format_timestamp(now: datetime) -> str:
    """ISO-8601 UTC with milliseconds and ``Z``, ``:`` and ``.`` replaced by ``-``."""
    utc = now.astimezone(timezone.utc)
    iso = f"{utc:%Y-%m-%dT%H:%M:%S}.{utc.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def sanitize_preview(text: str) -> str:
    """First 30 UTF-16 units of *text*; anything but ASCII alnum or Hangul becomes ``_``."""
    out = []
    units = 0
    for ch in text:
        width = 2 if ord(ch) > 0xFFFF else 1
        if units + width > PREVIEW_UNITS:
            if units < PREVIEW_UNITS:
                # cut lands inside a surrogate pair; the lone half is unsafe
                out.append("_")
            break
        out.append(_UNSAFE_PREVIEW_CHARS.sub("_", ch) * width)
        units += width
    return "".join(out)


def build_filename(text: str, fmt: str, now: datetime | None = None) -> str:
    stamp = format_timestamp(now or datetime.now(timezone.utc))
    return f"tts_{stamp}_{sanitize_preview(text)}.{fmt}"


def is_audio_file(name: str) -> bool:
    return name.endswith(AUDIO_EXTENSIONS) and not name.startswith(".")


class ArtifactStore:
    """Manages the directory that holds generated audio files."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def ensure_ready(self) -> None:
        """Create the backing directory if it does not exist yet."""
        self._dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, filename: str) -> Path:
        return self._dir / _checked_name(filename)

    def save(
        self,
        data: bytes,
        text: str,
        fmt: str,
        *,
        now: datetime | None = None,
    ) -> Artifact:
        """Persist *data* under a new filename derived from *text* and *fmt*."""
        self.ensure_ready()
        tmp = self._dir / f".{uuid.uuid4().hex}.part"
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            final = self._link_unique(tmp, build_filename(text, fmt, now))
        finally:
            tmp.unlink(missing_ok=True)
        log.info("Saved artifact %s (%d bytes)", final.name, len(data))
        return _artifact_from_stat(final.name, final, final.stat())

    def list(self) -> list[Artifact]:
        """All audio artifacts, sorted by filename. Absent directory → ``[]``."""
        if not self._dir.is_dir():
            return []
        artifacts = []
        for entry in sorted(os.scandir(self._dir), key=lambda e: e.name):
            if not (is_audio_file(entry.name) and entry.is_file()):
                continue
            try:
                st = entry.stat()
            except FileNotFoundError:
                # deleted between scandir and stat
                continue
            artifacts.append(_artifact_from_stat(entry.name, Path(entry.path), st))
        return artifacts

    def describe(self, filename: str) -> Artifact:
        path = self.path_for(filename)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise NotFound(f"File not found: {filename}") from None
        return _artifact_from_stat(path.name, path, st)

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        if not path.is_file():
            raise NotFound(f"File not found: {filename}")
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(f"File not found: {filename}") from None
        log.info("Deleted artifact %s", filename)

    def _link_unique(self, tmp: Path, filename: str) -> Path:
        """Link *tmp* under *filename*, or ``<stem>-N.<ext>`` if that is taken."""
        stem, dot, ext = filename.rpartition(".")
        candidate = filename
        counter = 0
        while True:
            final = self._dir / candidate
            try:
                os.link(tmp, final)
                return final
            except FileExistsError:
                counter += 1
                candidate = f"{stem}-{counter}{dot}{ext}"


def _checked_name(filename: str) -> str:
    name = (filename or "").strip()
    if not name:
        raise InvalidArgument("filename is required")
    if name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidArgument(f"invalid filename: {filename!r}")
    return name


def _artifact_from_stat(filename: str, path: Path, st: os.stat_result) -> Artifact:
    created = getattr(st, "st_birthtime", None) or st.st_mtime
    return Artifact(
        filename=filename,
        path=path,
        size_bytes=st.st_size,
        created_at=datetime.fromtimestamp(created, tz=timezone.utc),
    )
