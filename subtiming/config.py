"""App configuration and filesystem paths."""

import os
import shlex
from pathlib import Path

# Base directory is the project root (subtitle-timing).
BASE_DIR = Path(__file__).resolve().parents[1]

DOCUMENTS_DIR = Path(os.getenv("SUBTIMING_DOCUMENTS_DIR", str(BASE_DIR / "documents")))
UPLOADS_DIR = Path(os.getenv("SUBTIMING_UPLOADS_DIR", str(BASE_DIR / "uploads")))
MAX_UPLOAD_BYTES = 20 * 1024 * 1024

# Boundary enforcement: adjust | clip | error | none
BOUNDARY_POLICY = os.getenv("SUBTIMING_BOUNDARY_POLICY", "adjust")
SUBTITLE_SPACING_MS = int(os.getenv("SUBTIMING_SPACING_MS", "100"))
MIN_DURATION_MS = int(os.getenv("SUBTIMING_MIN_DURATION_MS", "1"))

# Forced alignment (aeneas-compatible command line).
ALIGN_COMMAND = shlex.split(os.getenv("SUBTIMING_ALIGN_COMMAND", "python3 -m aeneas.tools.execute_task"))
ALIGN_LANGUAGE = os.getenv("SUBTIMING_ALIGN_LANGUAGE", "eng")
ALIGN_OPTIONS = os.getenv("SUBTIMING_ALIGN_OPTIONS", "")
ALIGN_TIMEOUT_SEC = int(os.getenv("SUBTIMING_ALIGN_TIMEOUT_SEC", "600"))

# Word-level timing fix-up.
WORD_MATCH_THRESHOLD = float(os.getenv("SUBTIMING_WORD_MATCH_THRESHOLD", "0.7"))
WORD_SEARCH_WINDOW = int(os.getenv("SUBTIMING_WORD_SEARCH_WINDOW", "50"))
WHISPER_MODEL = os.getenv("SUBTIMING_WHISPER_MODEL", "base")

FFMPEG_TIMEOUT_SEC = 300


def ensure_directories() -> None:
    """Create required directories if they do not exist."""
    DOCUMENTS_DIR.mkdir(parents=True, exist_ok=True)
    UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
