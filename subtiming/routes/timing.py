"""Timing and structural edit endpoints."""

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Form, HTTPException

from subtiming.config import UPLOADS_DIR
from subtiming.routes.documents import require_document
from subtiming.services import boundaries, segmentation
from subtiming.services.media import crop_media
from subtiming.services.subtitles import Document, save_document

router = APIRouter(prefix="/documents/{document_id}")


def _apply(document_id: str, edit: Callable[[Document], Any]) -> Dict[str, Any]:
    """Run one edit against a stored document and persist it on success."""
    document = require_document(document_id)
    try:
        edit(document)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    save_document(document)
    return document.to_dict()


@router.post("/segments/{index}/start")
def set_start(document_id: str, index: int, value_ms: int = Form(...), policy: str = Form("")) -> Dict[str, Any]:
    return _apply(document_id, lambda doc: boundaries.set_start(doc, index, value_ms, policy or None))


@router.post("/segments/{index}/stop")
def set_stop(document_id: str, index: int, value_ms: int = Form(...), policy: str = Form("")) -> Dict[str, Any]:
    return _apply(document_id, lambda doc: boundaries.set_stop(doc, index, value_ms, policy or None))


@router.post("/segments/{index}/shift")
def shift(document_id: str, index: int, delta_ms: int = Form(...), policy: str = Form("")) -> Dict[str, Any]:
    return _apply(document_id, lambda doc: boundaries.shift(doc, index, delta_ms, policy or None))


@router.post("/merge")
def merge(
    document_id: str,
    first: Optional[int] = Form(None),
    last: Optional[int] = Form(None),
    index: Optional[int] = Form(None),
    at_segment_start: bool = Form(False),
    count: int = Form(1),
) -> Dict[str, Any]:
    """Merge a selected range, or merge at a point when only ``index`` is given."""
    if first is not None and last is not None:
        return _apply(document_id, lambda doc: segmentation.merge(doc, first, last))
    if index is None:
        raise HTTPException(status_code=400, detail="Provide first and last, or index")
    return _apply(document_id, lambda doc: segmentation.merge_at_point(doc, index, at_segment_start, count))


@router.post("/split")
def split(
    document_id: str,
    index: int = Form(...),
    offset: Optional[int] = Form(None),
    timestamp_ms: Optional[int] = Form(None),
) -> Dict[str, Any]:
    return _apply(document_id, lambda doc: segmentation.split(doc, index, offset, timestamp_ms))


@router.post("/crop")
def crop(
    document_id: str,
    start_ms: int = Form(...),
    stop_ms: int = Form(...),
    rebase: bool = Form(False),
    include_media: bool = Form(False),
) -> Dict[str, Any]:
    """Crop the document to a window, and its media file too when asked."""

    def edit(document: Document) -> None:
        if include_media:
            if not document.media_path:
                raise ValueError("Document has no media to crop")
            source = Path(document.media_path)
            destination = UPLOADS_DIR / f"{document.document_id}_{start_ms}_{stop_ms}{source.suffix}"
            document.media_path = str(crop_media(source, destination, start_ms, stop_ms))
        segmentation.crop(document, start_ms, stop_ms, rebase=rebase)

    return _apply(document_id, edit)
