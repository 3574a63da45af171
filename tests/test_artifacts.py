"""Tests for the file-backed artifact store."""

from __future__ import annotations

import os
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from speech_relay.errors import InvalidArgument, NotFound
from speech_relay.storage.artifacts import (
    ArtifactStore,
    build_filename,
    format_timestamp,
    sanitize_preview,
)

_NOW = datetime(2024, 5, 1, 12, 34, 56, 789000, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Unit: filename derivation
# ---------------------------------------------------------------------------


def test_format_timestamp_replaces_colons_and_dots():
    assert format_timestamp(_NOW) == "2024-05-01T12-34-56-789Z"


def test_sanitize_preview_keeps_hangul_and_ascii_alnum():
    assert sanitize_preview("안녕, world!") == "안녕__world_"


def test_sanitize_preview_truncates_to_30_chars():
    text = "a" * 25 + " bcdefghij"
    preview = sanitize_preview(text)
    assert len(preview) == 30
    assert preview == "a" * 25 + "_bcde"


def test_sanitize_preview_counts_astral_chars_as_two_units():
    assert sanitize_preview("\N{GRINNING FACE}a") == "__a"
    assert sanitize_preview("\N{GRINNING FACE}" * 20) == "_" * 30


def test_sanitize_preview_cut_inside_surrogate_pair_leaves_one_unit():
    assert sanitize_preview("a" * 29 + "\N{GRINNING FACE}bc") == "a" * 29 + "_"


def test_build_filename_layout():
    assert build_filename("Hello world", "mp3", _NOW) == (
        "tts_2024-05-01T12-34-56-789Z_Hello_world.mp3"
    )


def test_build_filename_default_clock_matches_pattern():
    name = build_filename("hi", "flac")
    assert re.fullmatch(r"tts_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z_hi\.flac", name)


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


def test_ensure_ready_is_idempotent(tmp_path):
    store = ArtifactStore(tmp_path / "audio")
    store.ensure_ready()
    store.ensure_ready()
    assert (tmp_path / "audio").is_dir()


def test_save_writes_bytes_and_leaves_no_temp_file(tmp_path):
    store = ArtifactStore(tmp_path / "audio")
    artifact = store.save(b"\x01" * 1536, "Hello world", "mp3", now=_NOW)

    assert artifact.filename == "tts_2024-05-01T12-34-56-789Z_Hello_world.mp3"
    assert artifact.size_bytes == 1536
    assert artifact.size_kb == pytest.approx(1.5)
    assert artifact.path.read_bytes() == b"\x01" * 1536
    assert [p.name for p in (tmp_path / "audio").iterdir()] == [artifact.filename]


def test_save_same_timestamp_gets_unique_names(tmp_path):
    store = ArtifactStore(tmp_path)
    first = store.save(b"a", "same", "mp3", now=_NOW)
    second = store.save(b"b", "same", "mp3", now=_NOW)
    third = store.save(b"c", "same", "mp3", now=_NOW)

    assert first.filename.endswith("_same.mp3")
    assert second.filename == first.filename.replace(".mp3", "-1.mp3")
    assert third.filename == first.filename.replace(".mp3", "-2.mp3")
    assert len(store.list()) == 3


def test_concurrent_saves_with_same_timestamp_never_collide(tmp_path):
    store = ArtifactStore(tmp_path)
    payloads = [f"clip-{i}".encode() for i in range(64)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        artifacts = list(
            pool.map(lambda data: store.save(data, "same", "mp3", now=_NOW), payloads)
        )

    names = [a.filename for a in artifacts]
    assert len(set(names)) == len(payloads)
    assert sorted(p.name for p in tmp_path.iterdir()) == sorted(names)
    for data, artifact in zip(payloads, artifacts):
        assert artifact.path.read_bytes() == data


def test_list_filters_extensions_and_sorts(tmp_path):
    store = ArtifactStore(tmp_path)
    for name in ("b.opus", "a.mp3", "notes.txt", "c.flac", "d.aac", ".x.mp3.part"):
        (tmp_path / name).write_bytes(b"data")
    (tmp_path / "sub.mp3").mkdir()

    names = [a.filename for a in store.list()]
    assert names == ["a.mp3", "b.opus", "c.flac", "d.aac"]


def test_list_skips_file_deleted_during_scan(tmp_path, monkeypatch):
    store = ArtifactStore(tmp_path)
    (tmp_path / "gone.mp3").write_bytes(b"x")
    (tmp_path / "kept.mp3").write_bytes(b"y")
    real_scandir = os.scandir

    def scandir_then_delete(path):
        entries = list(real_scandir(path))
        (tmp_path / "gone.mp3").unlink()
        return entries

    monkeypatch.setattr(os, "scandir", scandir_then_delete)
    assert [a.filename for a in store.list()] == ["kept.mp3"]


def test_list_absent_directory_is_empty(tmp_path):
    store = ArtifactStore(tmp_path / "missing")
    assert store.list() == []


def test_describe_reports_size_and_creation_time(tmp_path):
    store = ArtifactStore(tmp_path)
    (tmp_path / "clip.mp3").write_bytes(b"x" * 10)
    artifact = store.describe("clip.mp3")
    assert artifact.size_bytes == 10
    assert artifact.created_at.tzinfo is not None


def test_delete_removes_file(tmp_path):
    store = ArtifactStore(tmp_path)
    artifact = store.save(b"abc", "bye", "aac", now=_NOW)
    store.delete(artifact.filename)
    assert store.list() == []


def test_delete_missing_raises_not_found_and_keeps_store(tmp_path):
    store = ArtifactStore(tmp_path)
    kept = store.save(b"abc", "keep", "mp3", now=_NOW)
    with pytest.raises(NotFound):
        store.delete("tts_nope.mp3")
    assert [a.filename for a in store.list()] == [kept.filename]


@pytest.mark.parametrize("name", ["", "   ", "../secret.mp3", "a/b.mp3", "..", "a\\b.mp3"])
def test_delete_rejects_paths(tmp_path, name):
    store = ArtifactStore(tmp_path)
    with pytest.raises(InvalidArgument):
        store.delete(name)
