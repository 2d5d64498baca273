"""Health check endpoints."""

import shutil
from typing import Any, Dict

from fastapi import APIRouter

from subtiming.config import ALIGN_COMMAND, DOCUMENTS_DIR, UPLOADS_DIR

router = APIRouter()


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready() -> Dict[str, Any]:
    checks: Dict[str, Any] = {"status": "ok"}
    checks["documents_dir"] = DOCUMENTS_DIR.exists()
    checks["uploads_dir"] = UPLOADS_DIR.exists()
    checks["ffmpeg"] = shutil.which("ffmpeg") is not None
    checks["align_tool"] = bool(ALIGN_COMMAND) and shutil.which(ALIGN_COMMAND[0]) is not None
    if not checks["documents_dir"]:
        checks["status"] = "degraded"
    return checks
