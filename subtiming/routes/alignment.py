"""Alignment and word timing endpoints."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from subtiming.config import MAX_UPLOAD_BYTES, UPLOADS_DIR, WHISPER_MODEL, WORD_MATCH_THRESHOLD
from subtiming.routes.documents import require_document
from subtiming.services.alignment import align_document
from subtiming.services.subtitles import save_document
from subtiming.services.transcription import save_word_data, transcribe_words
from subtiming.services.word_data import fix_timing_from_words, parse_word_data

router = APIRouter(prefix="/documents/{document_id}")
logger = logging.getLogger(__name__)


@router.post("/align")
def align(
    document_id: str,
    audio_path: str = Form(""),
    first: Optional[int] = Form(None),
    last: Optional[int] = Form(None),
    language: str = Form(""),
    options: Optional[str] = Form(None),
) -> Dict[str, Any]:
    """Run forced alignment for a range of segments; blocks until the tool exits."""
    document = require_document(document_id)
    audio = audio_path.strip() or document.media_path
    if not audio:
        raise HTTPException(status_code=400, detail="No audio file for this document")
    if not Path(audio).exists():
        raise HTTPException(status_code=400, detail="Audio file not found")
    try:
        result = align_document(
            document,
            Path(audio),
            first=first,
            last=last,
            language=language.strip() or None,
            options=options,
        )
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    save_document(document)
    return {"aligned": len(result.pairs), "document": document.to_dict()}


@router.post("/word-timing")
def word_timing(
    document_id: str,
    words: UploadFile = File(...),
    first: Optional[int] = Form(None),
    last: Optional[int] = Form(None),
    threshold: float = Form(WORD_MATCH_THRESHOLD),
) -> Dict[str, Any]:
    """Retime segments from uploaded word-level timing data."""
    document = require_document(document_id)
    data = words.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Upload too large")
    kind = Path(words.filename or "").suffix or "json"
    try:
        timings = parse_word_data(data.decode("utf-8-sig"), kind)
        retimed = fix_timing_from_words(document, timings, first=first, last=last, threshold=threshold)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (UnicodeDecodeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    save_document(document)
    logger.info("Word timing retimed %d segments of %s", retimed, document_id)
    return {"retimed": retimed, "document": document.to_dict()}


@router.post("/word-timing/transcribe")
def transcribe_word_timing(
    document_id: str,
    language: str = Form(""),
    model: str = Form(WHISPER_MODEL),
) -> Dict[str, Any]:
    """Generate word timings from the document's media with Whisper, then retime."""
    document = require_document(document_id)
    if not document.media_path or not Path(document.media_path).exists():
        raise HTTPException(status_code=400, detail="Document has no media file")
    try:
        timings = transcribe_words(Path(document.media_path), model_name=model, language=language.strip() or None)
    except ImportError as exc:
        logger.exception("Whisper is not installed")
        raise HTTPException(status_code=500, detail="Transcription is not available") from exc
    save_word_data(timings, UPLOADS_DIR / f"{document_id}_words.json")
    retimed = fix_timing_from_words(document, timings)
    save_document(document)
    return {"retimed": retimed, "words": len(timings), "document": document.to_dict()}
