"""Subtitle document model, ordered segment store and JSON persistence."""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from subtiming.config import BOUNDARY_POLICY, DOCUMENTS_DIR, MIN_DURATION_MS, SUBTITLE_SPACING_MS

EditListener = Callable[["Document", int, "Segment"], None]


@dataclass
class WordTiming:
    """One externally timed word (or token) with optional confidence."""

    text: str
    start_ms: int
    stop_ms: int
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start_ms": self.start_ms,
            "stop_ms": self.stop_ms,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordTiming":
        confidence = data.get("confidence")
        return cls(
            text=str(data.get("text", "")),
            start_ms=int(data.get("start_ms", 0)),
            stop_ms=int(data.get("stop_ms", 0)),
            confidence=float(confidence) if confidence is not None else None,
        )


@dataclass
class Segment:
    """A single timed text unit.

    ``comment`` renders before the segment, ``after_comments`` right after it.
    ``extra`` keeps format-specific fields (ASS style, layer, ...) for round-trips.
    """

    start_ms: int
    stop_ms: int
    text: str = ""
    id: Optional[str] = None
    comment: Optional[str] = None
    after_comments: List[str] = field(default_factory=list)
    words: List[WordTiming] = field(default_factory=list)
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n") if self.text else []

    @property
    def duration_ms(self) -> int:
        return self.stop_ms - self.start_ms

    def all_comments(self) -> List[str]:
        """Return every comment attached to this segment, in render order."""
        comments = [self.comment] if self.comment else []
        return comments + [item for item in self.after_comments if item]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start_ms": self.start_ms,
            "stop_ms": self.stop_ms,
            "text": self.text,
            "comment": self.comment,
            "after_comments": list(self.after_comments),
            "words": [word.to_dict() for word in self.words],
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        return cls(
            start_ms=int(data.get("start_ms", 0)),
            stop_ms=int(data.get("stop_ms", 0)),
            text=str(data.get("text", "")),
            id=data.get("id"),
            comment=data.get("comment"),
            after_comments=[str(item) for item in data.get("after_comments") or []],
            words=[WordTiming.from_dict(item) for item in data.get("words") or []],
            extra={str(k): str(v) for k, v in (data.get("extra") or {}).items()},
        )


@dataclass
class Document:
    """Ordered segment sequence bound to one subtitle format."""

    format: str
    segments: List[Segment] = field(default_factory=list)
    header: Optional[str] = None
    policy: str = BOUNDARY_POLICY
    spacing_ms: int = SUBTITLE_SPACING_MS
    min_duration_ms: int = MIN_DURATION_MS
    source_path: Optional[str] = None
    media_path: Optional[str] = None
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    _listeners: List[EditListener] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.sort()

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def segment(self, index: int) -> Segment:
        """Return the segment at ``index``; negative indices are rejected."""
        if index < 0 or index >= len(self.segments):
            raise IndexError(f"Segment index {index} out of range (0..{len(self.segments) - 1})")
        return self.segments[index]

    def previous(self, index: int) -> Optional[Segment]:
        return self.segments[index - 1] if index > 0 else None

    def next(self, index: int) -> Optional[Segment]:
        return self.segments[index + 1] if index + 1 < len(self.segments) else None

    def resolve_range(self, first: Optional[int] = None, last: Optional[int] = None) -> tuple[int, int]:
        """Normalize an inclusive index range, defaulting to the whole document."""
        if not self.segments:
            raise IndexError("Document has no segments")
        first = 0 if first is None else first
        last = len(self.segments) - 1 if last is None else last
        if first > last:
            raise IndexError(f"Invalid segment range {first}..{last}")
        self.segment(first)
        self.segment(last)
        return first, last

    def range(self, first: Optional[int] = None, last: Optional[int] = None) -> List[Segment]:
        first, last = self.resolve_range(first, last)
        return self.segments[first : last + 1]

    def between(self, start_ms: int, stop_ms: int) -> List[Segment]:
        """Return segments overlapping the [start_ms, stop_ms) window."""
        return [seg for seg in self.segments if seg.stop_ms > start_ms and seg.start_ms < stop_ms]

    def index_at(self, ms: int) -> Optional[int]:
        """Return the index of the segment playing at ``ms``, if any."""
        for index, seg in enumerate(self.segments):
            if seg.start_ms <= ms < seg.stop_ms:
                return index
            if seg.start_ms > ms:
                break
        return None

    def index_of(self, segment: Segment) -> int:
        for index, seg in enumerate(self.segments):
            if seg is segment:
                return index
        raise ValueError("Segment does not belong to this document")

    def insert(self, segment: Segment) -> int:
        """Insert a segment after any existing segment with the same start."""
        index = len(self.segments)
        for position, seg in enumerate(self.segments):
            if seg.start_ms > segment.start_ms:
                index = position
                break
        self.segments.insert(index, segment)
        return index

    def remove(self, index: int) -> Segment:
        self.segment(index)
        return self.segments.pop(index)

    def replace_range(self, first: int, last: int, replacement: List[Segment]) -> None:
        first, last = self.resolve_range(first, last)
        self.segments[first : last + 1] = replacement
        self.sort()

    def sort(self) -> None:
        # sorted() is stable, so ties keep their original order.
        self.segments = sorted(self.segments, key=lambda seg: seg.start_ms)

    def add_listener(self, listener: EditListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EditListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_edit(self, segment: Segment) -> None:
        """Signal listeners that a segment's timing changed."""
        index = self.index_of(segment)
        for listener in list(self._listeners):
            listener(self, index, segment)

    def snapshot(self) -> List[Segment]:
        return copy.deepcopy(self.segments)

    def restore(self, segments: List[Segment]) -> None:
        self.segments = segments

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "format": self.format,
            "header": self.header,
            "policy": self.policy,
            "spacing_ms": self.spacing_ms,
            "min_duration_ms": self.min_duration_ms,
            "source_path": self.source_path,
            "media_path": self.media_path,
            "segments": [seg.to_dict() for seg in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            format=str(data.get("format", "srt")),
            segments=[Segment.from_dict(item) for item in data.get("segments") or []],
            header=data.get("header"),
            policy=str(data.get("policy") or BOUNDARY_POLICY),
            spacing_ms=int(data.get("spacing_ms", SUBTITLE_SPACING_MS)),
            min_duration_ms=int(data.get("min_duration_ms", MIN_DURATION_MS)),
            source_path=data.get("source_path"),
            media_path=data.get("media_path"),
            document_id=str(data.get("document_id") or uuid.uuid4().hex),
        )


class PlaybackLoop:
    """Loop window that follows the timing of one bound segment."""

    def __init__(self, document: Document, segment: Segment, lead_ms: int = 0, lag_ms: int = 0) -> None:
        self.document = document
        self.segment = segment
        self.lead_ms = lead_ms
        self.lag_ms = lag_ms
        self.start_ms = 0
        self.stop_ms = 0
        self._sync()
        document.add_listener(self._on_edit)

    def _sync(self) -> None:
        self.start_ms = max(0, self.segment.start_ms - self.lead_ms)
        self.stop_ms = self.segment.stop_ms + self.lag_ms

    def _on_edit(self, document: Document, index: int, segment: Segment) -> None:
        if segment is self.segment:
            self._sync()

    def close(self) -> None:
        self.document.remove_listener(self._on_edit)


def document_path(document_id: str) -> Path:
    """Return the JSON path for a stored document."""
    return DOCUMENTS_DIR / f"{document_id}.json"


def load_document(document_id: str) -> Optional[Document]:
    """Load a stored document from disk."""
    path = document_path(document_id)
    if not path.exists():
        return None
    return Document.from_dict(json.loads(path.read_text(encoding="utf-8")))


def save_document(document: Document) -> None:
    """Persist a document to disk."""
    path = document_path(document.document_id)
    path.write_text(json.dumps(document.to_dict(), indent=2), encoding="utf-8")


def delete_document(document_id: str) -> bool:
    path = document_path(document_id)
    if not path.exists():
        return False
    path.unlink()
    return True
