"""Audio, video and image parsers.

Audio is transcribed through LiteLLM. Video has its audio track extracted
with ffmpeg first; without ffmpeg on PATH a placeholder document is stored
so the file is still tracked. Images are stored as OCR placeholders.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from almanac.errors import ParseFailure
from almanac.ingest.parsers.base import ParsedDocument, TranscriptSegment
from almanac.rag import llm_client

logger = logging.getLogger(__name__)

_MAX_AUDIO_BYTES = 25 * 1024 * 1024  # provider upload limit
# Mono speech at 32 kbit/s keeps about 100 minutes under the upload limit.
_VIDEO_AUDIO_BITRATE = "32k"


def parse_audio(path: Path, model: str) -> ParsedDocument:
    """Transcribe *path*; segments carry start/end offsets when available."""
    size = path.stat().st_size
    if size > _MAX_AUDIO_BYTES:
        raise ParseFailure(
            path,
            f"audio exceeds the 25 MB transcription limit ({size / (1024 * 1024):.1f} MB)",
        )
    logger.info("Transcribing %s with %s", path.name, model)
    try:
        text, raw_segments = llm_client.transcribe(model, path)
    except Exception as exc:
        raise ParseFailure(path, f"transcription failed: {exc}") from exc

    segments = [TranscriptSegment(t, s, e) for t, s, e in raw_segments if t.strip()]
    metadata = {
        "format": path.suffix.lower().lstrip("."),
        "segment_count": len(segments),
        "transcription_model": model,
    }
    if segments:
        metadata["duration"] = segments[-1].end
    return ParsedDocument(text=text.strip(), title=path.stem, metadata=metadata, segments=segments)


def parse_video(path: Path, model: str) -> ParsedDocument:
    ffmpeg = shutil.which("ffmpeg")
    if ffmpeg is None:
        logger.warning("ffmpeg not found; storing %s as a placeholder", path.name)
        return ParsedDocument(
            text=f"Video file: {path.name}",
            title=path.stem,
            metadata={"format": "video", "needs_processing": True},
        )

    with tempfile.TemporaryDirectory() as tmp:
        audio_path = Path(tmp) / f"{path.stem}.mp3"
        result = subprocess.run(
            [
                ffmpeg, "-i", str(path),
                "-vn", "-ac", "1", "-ar", "16000",
                "-acodec", "libmp3lame", "-b:a", _VIDEO_AUDIO_BITRATE, "-y",
                str(audio_path),
            ],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise ParseFailure(path, f"ffmpeg audio extraction failed: {result.stderr.strip()}")
        try:
            doc = parse_audio(audio_path, model)
        except ParseFailure as exc:
            raise ParseFailure(path, exc.message) from exc

    doc.title = path.stem
    doc.metadata["format"] = "video"
    return doc


def parse_image(path: Path) -> ParsedDocument:
    return ParsedDocument(
        text=f"Image: {path.name}",
        title=path.stem,
        metadata={"format": path.suffix.lower().lstrip("."), "needs_ocr": True},
    )
