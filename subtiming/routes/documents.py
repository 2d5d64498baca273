"""Document upload, retrieval and export endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse

from subtiming.config import MAX_UPLOAD_BYTES
from subtiming.services.boundaries import parse_policy, resolve_violations
from subtiming.services.formats import ADAPTERS, parse_text, serialize
from subtiming.services.subtitles import Document, delete_document, load_document, save_document

router = APIRouter()
logger = logging.getLogger(__name__)

MEDIA_TYPES = {"srt": "application/x-subrip", "vtt": "text/vtt", "ass": "text/x-ssa", "tsv": "text/tab-separated-values"}


def require_document(document_id: str) -> Document:
    document = load_document(document_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _read_upload(upload: UploadFile) -> str:
    data = upload.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Upload too large")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Subtitle files must be UTF-8") from exc


@router.post("/documents", status_code=201)
def create_document(
    file: Optional[UploadFile] = File(None),
    text: str = Form(""),
    format: str = Form(""),
    policy: str = Form(""),
    spacing_ms: Optional[int] = Form(None),
    media_path: str = Form(""),
) -> Dict[str, Any]:
    """Parse an uploaded subtitle file (or pasted text) into a stored document."""
    filename = None
    if file is not None:
        filename = file.filename
        text = _read_upload(file)
    if not text.strip():
        raise HTTPException(status_code=400, detail="Provide a subtitle file or text")
    fmt = format.lower().strip() or None
    if fmt and fmt not in ADAPTERS:
        raise HTTPException(status_code=400, detail="Unsupported subtitle format")
    settings: Dict[str, Any] = {}
    if policy.strip():
        try:
            settings["policy"] = parse_policy(policy).value
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    if spacing_ms is not None:
        settings["spacing_ms"] = spacing_ms
    document = parse_text(text, fmt, filename=filename, **settings)
    document.source_path = filename
    document.media_path = media_path.strip() or None
    resolve_violations(document)
    save_document(document)
    logger.info("Stored %s document %s with %d segments", document.format, document.document_id, len(document))
    return document.to_dict()


@router.get("/documents/{document_id}")
def get_document(document_id: str) -> Dict[str, Any]:
    return require_document(document_id).to_dict()


@router.get("/documents/{document_id}/export")
def export_document(document_id: str, format: str = "") -> PlainTextResponse:
    """Render the document in its own format or a requested one."""
    document = require_document(document_id)
    fmt = format.lower().strip() or document.format
    if fmt not in ADAPTERS:
        raise HTTPException(status_code=400, detail="Unsupported subtitle format")
    filename = f"{document_id}.{fmt}"
    return PlainTextResponse(
        serialize(document, fmt),
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/documents/{document_id}")
def remove_document(document_id: str) -> Dict[str, str]:
    if not delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "deleted"}
