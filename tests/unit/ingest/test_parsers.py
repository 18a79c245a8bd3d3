"""Tests for content-type parsers and parser dispatch."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pypdf
import pytest

from almanac.db.models import ItemType
from almanac.errors import ParseFailure, UnsupportedType
from almanac.ingest.parsers import (
    parse,
    parse_audio,
    parse_image,
    parse_markdown,
    parse_pdf,
    parse_text,
    parse_video,
)
from almanac.ingest.parsers.markdown import split_frontmatter


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def test_markdown_title_from_first_h1(tmp_path):
    f = tmp_path / "note.md"
    f.write_text("Intro line\n\n## Sub\n\n# Real Title\n\nBody text.\n")
    doc = parse_markdown(f)
    assert doc.title == "Real Title"
    assert "#" not in doc.text
    assert "Sub" in doc.text
    assert doc.metadata["format"] == "markdown"


def test_markdown_frontmatter_title_wins(tmp_path):
    f = tmp_path / "note.md"
    f.write_text("---\ntitle: From Front Matter\ntags: [a, b]\ndate: 2024-05-01\n---\n# Heading\n\nBody\n")
    doc = parse_markdown(f)
    assert doc.title == "From Front Matter"
    assert doc.metadata["frontmatter"]["tags"] == ["a", "b"]
    assert doc.metadata["frontmatter"]["date"] == "2024-05-01"
    assert "title:" not in doc.text


def test_markdown_title_falls_back_to_stem(tmp_path):
    f = tmp_path / "plain-note.md"
    f.write_text("No headings here.\n")
    assert parse_markdown(f).title == "plain-note"


def test_markdown_links_collected_and_replaced(tmp_path):
    f = tmp_path / "links.md"
    f.write_text("See [the docs](https://example.com/docs) and ![diagram](img/d.png).\n")
    doc = parse_markdown(f)
    assert doc.metadata["links"] == ["https://example.com/docs", "img/d.png"]
    assert "See the docs and diagram." in doc.text
    assert "https://" not in doc.text


def test_markdown_invalid_frontmatter_raises(tmp_path):
    f = tmp_path / "bad.md"
    f.write_text("---\ntitle: [unclosed\n---\nBody\n")
    with pytest.raises(ParseFailure):
        parse_markdown(f)


def test_split_frontmatter_absent():
    assert split_frontmatter("Just text") == ({}, "Just text")


# ---------------------------------------------------------------------------
# Text and code
# ---------------------------------------------------------------------------


def test_parse_text_plain(tmp_path):
    f = tmp_path / "notes.txt"
    f.write_text("line one\nline two\n")
    doc = parse_text(f)
    assert doc.text == "line one\nline two\n"
    assert doc.title == "notes"
    assert doc.metadata == {"format": "text", "line_count": 2}


def test_parse_text_code_language(tmp_path):
    f = tmp_path / "script.py"
    f.write_text("print('hi')\n")
    doc = parse_text(f)
    assert doc.metadata["format"] == "code"
    assert doc.metadata["language"] == "python"


def test_parse_text_replaces_invalid_utf8(tmp_path):
    f = tmp_path / "latin.txt"
    f.write_bytes(b"caf\xe9 au lait")
    doc = parse_text(f)
    assert doc.text.startswith("caf")
    assert "au lait" in doc.text


def test_parse_text_missing_file_raises(tmp_path):
    with pytest.raises(ParseFailure):
        parse_text(tmp_path / "gone.txt")


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def test_parse_pdf_metadata(tmp_path):
    f = tmp_path / "doc.pdf"
    writer = pypdf.PdfWriter()
    writer.add_blank_page(width=200, height=200)
    writer.add_blank_page(width=200, height=200)
    writer.add_metadata({"/Title": "My Document", "/Author": "A. Writer"})
    writer.write(f)

    doc = parse_pdf(f)
    assert doc.title == "My Document"
    assert doc.metadata == {"format": "pdf", "page_count": 2, "author": "A. Writer"}
    assert doc.text == ""


def test_parse_pdf_title_falls_back_to_stem(tmp_path):
    f = tmp_path / "untitled.pdf"
    writer = pypdf.PdfWriter()
    writer.add_blank_page(width=100, height=100)
    writer.write(f)
    assert parse_pdf(f).title == "untitled"


def test_parse_pdf_corrupt_raises(tmp_path):
    f = tmp_path / "broken.pdf"
    f.write_bytes(b"this is not a pdf")
    with pytest.raises(ParseFailure):
        parse_pdf(f)


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


def test_parse_audio_builds_segments(tmp_path):
    f = tmp_path / "talk.mp3"
    f.write_bytes(b"\x00" * 128)
    with patch("almanac.ingest.parsers.media.llm_client.transcribe") as mock_tr:
        mock_tr.return_value = (
            " hello world ",
            [("hello", 0.0, 1.0), ("  ", 1.0, 1.2), ("world", 1.2, 2.5)],
        )
        doc = parse_audio(f, "openai/whisper-1")

    mock_tr.assert_called_once_with("openai/whisper-1", f)
    assert doc.text == "hello world"
    assert doc.is_transcript
    assert [s.text for s in doc.segments] == ["hello", "world"]
    assert doc.metadata["segment_count"] == 2
    assert doc.metadata["duration"] == 2.5
    assert doc.metadata["transcription_model"] == "openai/whisper-1"


def test_parse_audio_transcription_error_raises(tmp_path):
    f = tmp_path / "talk.wav"
    f.write_bytes(b"\x00" * 16)
    with patch(
        "almanac.ingest.parsers.media.llm_client.transcribe",
        side_effect=RuntimeError("service down"),
    ):
        with pytest.raises(ParseFailure, match="service down"):
            parse_audio(f, "openai/whisper-1")


def test_parse_audio_too_large_raises(tmp_path):
    f = tmp_path / "huge.mp3"
    with open(f, "wb") as fh:
        fh.truncate(26 * 1024 * 1024)
    with patch("almanac.ingest.parsers.media.llm_client.transcribe") as mock_tr:
        with pytest.raises(ParseFailure, match="25 MB"):
            parse_audio(f, "openai/whisper-1")
    mock_tr.assert_not_called()


def test_parse_video_without_ffmpeg_is_placeholder(tmp_path):
    f = tmp_path / "clip.mp4"
    f.write_bytes(b"\x00")
    with patch("almanac.ingest.parsers.media.shutil.which", return_value=None):
        doc = parse_video(f, "openai/whisper-1")
    assert doc.text == "Video file: clip.mp4"
    assert doc.metadata["needs_processing"] is True
    assert not doc.is_transcript


def _fake_ffmpeg(size: int = 64, returncode: int = 0):
    """Stand-in for subprocess.run that writes *size* bytes to the output path."""
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        if returncode == 0:
            Path(cmd[-1]).write_bytes(b"\x00" * size)
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="bad codec")

    return run, calls


def test_parse_video_extracts_compressed_audio(tmp_path):
    f = tmp_path / "lecture.mp4"
    f.write_bytes(b"\x00")
    run, calls = _fake_ffmpeg()
    with (
        patch("almanac.ingest.parsers.media.shutil.which", return_value="/usr/bin/ffmpeg"),
        patch("almanac.ingest.parsers.media.subprocess.run", side_effect=run),
        patch("almanac.ingest.parsers.media.llm_client.transcribe") as mock_tr,
    ):
        mock_tr.return_value = ("welcome", [("welcome", 0.0, 1.5)])
        doc = parse_video(f, "openai/whisper-1")

    (cmd,) = calls
    assert "libmp3lame" in cmd
    assert cmd[-1].endswith(".mp3")
    assert doc.title == "lecture"
    assert doc.metadata["format"] == "video"
    assert doc.is_transcript


def test_parse_video_failure_names_the_video(tmp_path, monkeypatch):
    f = tmp_path / "lecture.mp4"
    f.write_bytes(b"\x00")
    monkeypatch.setattr("almanac.ingest.parsers.media._MAX_AUDIO_BYTES", 10)
    run, _ = _fake_ffmpeg(size=64)
    with (
        patch("almanac.ingest.parsers.media.shutil.which", return_value="/usr/bin/ffmpeg"),
        patch("almanac.ingest.parsers.media.subprocess.run", side_effect=run),
    ):
        with pytest.raises(ParseFailure, match="25 MB") as exc_info:
            parse_video(f, "openai/whisper-1")
    assert exc_info.value.path == str(f)


def test_parse_video_ffmpeg_error(tmp_path):
    f = tmp_path / "broken.mkv"
    f.write_bytes(b"\x00")
    run, _ = _fake_ffmpeg(returncode=1)
    with (
        patch("almanac.ingest.parsers.media.shutil.which", return_value="/usr/bin/ffmpeg"),
        patch("almanac.ingest.parsers.media.subprocess.run", side_effect=run),
    ):
        with pytest.raises(ParseFailure, match="bad codec") as exc_info:
            parse_video(f, "openai/whisper-1")
    assert exc_info.value.path == str(f)


def test_parse_image_placeholder(tmp_path):
    f = tmp_path / "photo.png"
    f.write_bytes(b"\x89PNG")
    doc = parse_image(f)
    assert doc.title == "photo"
    assert doc.metadata == {"format": "png", "needs_ocr": True}


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def test_parse_dispatches_markdown_and_text(tmp_path):
    md = tmp_path / "a.md"
    md.write_text("# Title\n")
    org = tmp_path / "b.org"
    org.write_text("* heading\n")
    assert parse(md, ItemType.NOTE).metadata["format"] == "markdown"
    assert parse(org, ItemType.NOTE).metadata["format"] == "text"


def test_parse_bookmark_is_unsupported(tmp_path):
    f = tmp_path / "link.url"
    f.write_text("https://example.com")
    with pytest.raises(UnsupportedType):
        parse(f, ItemType.BOOKMARK)
