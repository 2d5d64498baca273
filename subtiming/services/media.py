"""Media processing helpers (FFmpeg integration)."""

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List

from subtiming.config import FFMPEG_TIMEOUT_SEC
from subtiming.services.errors import ExternalToolFailure
from subtiming.services.timestamps import format_timestamp

logger = logging.getLogger(__name__)


def _run_ffmpeg(command: List[str], runner: Callable = subprocess.run) -> None:
    logger.info("Running %s", " ".join(command))
    try:
        result = runner(command, capture_output=True, text=True, timeout=FFMPEG_TIMEOUT_SEC)
    except subprocess.TimeoutExpired as exc:
        raise ExternalToolFailure(f"FFmpeg timed out after {FFMPEG_TIMEOUT_SEC}s") from exc
    except OSError as exc:
        raise ExternalToolFailure(f"Could not start FFmpeg: {exc}") from exc
    if result.returncode != 0:
        raise ExternalToolFailure("FFmpeg failed", returncode=result.returncode, stderr=result.stderr[-2000:])


def extract_audio(media_path: Path, runner: Callable = subprocess.run) -> Path:
    """Extract mono 16kHz WAV audio from a media file; the caller removes the file."""
    temp_file = tempfile.NamedTemporaryFile(suffix=".wav", delete=False)
    temp_path = Path(temp_file.name)
    temp_file.close()

    command = [
        "ffmpeg",
        "-y",
        "-i",
        str(media_path),
        "-ac",
        "1",
        "-ar",
        "16000",
        "-vn",
        str(temp_path),
    ]
    try:
        _run_ffmpeg(command, runner)
    except ExternalToolFailure:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path


def crop_media(
    source: Path, destination: Path, start_ms: int, stop_ms: int, runner: Callable = subprocess.run
) -> Path:
    """Copy the [start_ms, stop_ms] window of a media file without re-encoding."""
    if stop_ms <= start_ms:
        raise ValueError("Crop window must end after it starts")
    command = [
        "ffmpeg",
        "-y",
        "-i",
        str(source),
        "-ss",
        format_timestamp(start_ms, "vtt"),
        "-to",
        format_timestamp(stop_ms, "vtt"),
        "-c",
        "copy",
        str(destination),
    ]
    _run_ffmpeg(command, runner)
    if not Path(destination).exists():
        raise ExternalToolFailure(f"FFmpeg did not write {destination}")
    return Path(destination)
