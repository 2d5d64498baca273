"""Word-level timing data: loaders and segment retiming from matched words."""

from __future__ import annotations

import dataclasses
import json
import logging
import re
import xml.etree.ElementTree as ET
from difflib import SequenceMatcher
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from subtiming.config import WORD_MATCH_THRESHOLD, WORD_SEARCH_WINDOW
from subtiming.services.boundaries import resolve_violations
from subtiming.services.errors import BoundaryViolation, ReconciliationMismatch
from subtiming.services.subtitles import Document, Segment, WordTiming
from subtiming.services.timestamps import seconds_to_ms

logger = logging.getLogger(__name__)

WORD_DATA_EXTENSIONS = (".json", ".srv2", ".tsv")


def normalize(text: str) -> str:
    return re.sub(r"\W+", "", text.lower())


def _first(item: dict, *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _word_from_item(item: Any) -> Optional[WordTiming]:
    if not isinstance(item, dict):
        raise ReconciliationMismatch(f"Word entry must be an object, got {type(item).__name__}")
    text = str(_first(item, "word", "text") or "").strip()
    if not text:
        return None
    start_ms = _first(item, "start_ms")
    stop_ms = _first(item, "stop_ms", "end_ms")
    try:
        if start_ms is None and item.get("start") is not None:
            start_ms = seconds_to_ms(item["start"])
        if stop_ms is None and item.get("end") is not None:
            stop_ms = seconds_to_ms(item["end"])
        if start_ms is None or stop_ms is None:
            # Aligners leave numerals and symbols untimed at times.
            logger.debug("Skipping untimed word %r", text)
            return None
        confidence = _first(item, "probability", "score", "confidence")
        return WordTiming(
            text=text,
            start_ms=int(start_ms),
            stop_ms=int(stop_ms),
            confidence=float(confidence) if confidence is not None else None,
        )
    except (TypeError, ValueError) as exc:
        raise ReconciliationMismatch(f"Invalid timing for word {text!r}") from exc


def parse_json_words(text: str) -> List[WordTiming]:
    """Read Whisper-style, flat list or ``{"words": [...]}`` JSON word data."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ReconciliationMismatch(f"Word data is not valid JSON: {exc}") from exc
    if isinstance(data, dict) and isinstance(data.get("segments"), list):
        items: List[Any] = []
        for segment in data["segments"]:
            if isinstance(segment, dict):
                items.extend(segment.get("words") or [])
    elif isinstance(data, dict) and isinstance(data.get("words"), list):
        items = data["words"]
    elif isinstance(data, list):
        items = data
    else:
        raise ReconciliationMismatch("Word data JSON has no words")
    return [word for word in (_word_from_item(item) for item in items) if word is not None]


def parse_tsv_words(text: str) -> List[WordTiming]:
    """Read ``start<TAB>stop<TAB>word[<TAB>confidence]`` rows, times in seconds."""
    words: List[WordTiming] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        columns = line.rstrip("\r").split("\t")
        if len(columns) < 3:
            raise ReconciliationMismatch(f"Word data line {line_no} needs start, stop and word columns")
        try:
            words.append(
                WordTiming(
                    text=columns[2].strip(),
                    start_ms=seconds_to_ms(columns[0]),
                    stop_ms=seconds_to_ms(columns[1]),
                    confidence=float(columns[3]) if len(columns) > 3 and columns[3].strip() else None,
                )
            )
        except ValueError as exc:
            raise ReconciliationMismatch(f"Invalid timing on word data line {line_no}") from exc
    return [word for word in words if word.text]


def parse_srv2_words(text: str) -> List[WordTiming]:
    """Read YouTube timed-text XML (``<p t d>`` rows with optional ``<s>`` words)."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ReconciliationMismatch(f"Word data is not valid XML: {exc}") from exc
    words: List[WordTiming] = []
    for row in root.iter():
        if row.tag not in ("p", "text"):
            continue
        try:
            row_start = int(row.get("t", "0"))
            row_stop = row_start + int(row.get("d", "0"))
        except ValueError as exc:
            raise ReconciliationMismatch("Invalid t/d attribute in word data") from exc
        parts = list(row.iter("s"))
        if not parts:
            for token in (row.text or "").split():
                words.append(WordTiming(text=token, start_ms=row_start, stop_ms=row_stop))
            continue
        starts = [row_start + int(part.get("t", "0")) for part in parts]
        for position, part in enumerate(parts):
            token = (part.text or "").strip()
            if not token:
                continue
            stop = starts[position + 1] if position + 1 < len(parts) else row_stop
            confidence = part.get("ac")
            words.append(
                WordTiming(
                    text=token,
                    start_ms=starts[position],
                    stop_ms=max(stop, starts[position]),
                    confidence=int(confidence) / 255.0 if confidence else None,
                )
            )
    return words


def parse_word_data(text: str, kind: str) -> List[WordTiming]:
    """Parse word data of ``kind`` (json, srv2, xml or tsv), sorted by start."""
    kind = kind.lower().lstrip(".")
    if kind == "json":
        words = parse_json_words(text)
    elif kind in ("srv2", "srv3", "xml"):
        words = parse_srv2_words(text)
    elif kind in ("tsv", "txt"):
        words = parse_tsv_words(text)
    else:
        raise ValueError(f"Unsupported word data type: {kind}")
    return sorted(words, key=lambda word: word.start_ms)


def resolve_word_data_path(path: Path, document_path: Optional[Path] = None) -> Path:
    """Resolve a file, or ``<document stem>.json|.srv2|.tsv`` inside a directory."""
    path = Path(path)
    if not path.is_dir():
        return path
    if document_path is None:
        raise ValueError("A word data directory needs the document path to look up")
    stem = Path(document_path).stem
    for extension in WORD_DATA_EXTENSIONS:
        candidate = path / f"{stem}{extension}"
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"No word data for {stem} in {path}")


def load_word_data(path: Path, document_path: Optional[Path] = None) -> List[WordTiming]:
    resolved = resolve_word_data_path(path, document_path)
    words = parse_word_data(resolved.read_text(encoding="utf-8-sig"), resolved.suffix or "tsv")
    logger.info("Loaded %d timed words from %s", len(words), resolved)
    return words


def _similarity(left: str, right: str) -> float:
    return SequenceMatcher(None, left, right).ratio()


def _match_tokens(
    tokens: List[str],
    stream: List[Tuple[str, WordTiming]],
    cursor: int,
    threshold: float,
    window: int,
) -> Optional[Tuple[int, int]]:
    """Find the best [begin, end) slice of ``stream`` matching ``tokens`` near ``cursor``."""
    target = " ".join(tokens)
    best: Optional[Tuple[float, int, int]] = None
    limit = min(len(stream), cursor + window)
    for begin in range(cursor, limit):
        # Allow one word more or less than the segment text.
        for length in (len(tokens), len(tokens) - 1, len(tokens) + 1):
            end = begin + length
            if length < 1 or end > len(stream):
                continue
            score = _similarity(target, " ".join(norm for norm, _ in stream[begin:end]))
            if best is None or score > best[0]:
                best = (score, begin, end)
    if best is None or best[0] < threshold:
        return None
    return best[1], best[2]


def fix_timing_from_words(
    document: Document,
    words: Iterable[WordTiming],
    first: Optional[int] = None,
    last: Optional[int] = None,
    threshold: float = WORD_MATCH_THRESHOLD,
    window: int = WORD_SEARCH_WINDOW,
) -> int:
    """Retime segments to the first/last matched word of their text.

    Words are matched in order with a moving cursor using fuzzy similarity of
    normalized tokens. Unmatched segments keep their timing. Every change is
    applied together or not at all. Returns the number of retimed segments.
    """
    first, last = document.resolve_range(first, last)
    stream = [(normalize(word.text), word) for word in sorted(words, key=lambda word: word.start_ms)]
    stream = [(norm, word) for norm, word in stream if norm]
    if not stream:
        raise ReconciliationMismatch("Word data contains no usable words")

    changes: List[Tuple[Segment, List[WordTiming]]] = []
    cursor = 0
    for index in range(first, last + 1):
        segment = document.segments[index]
        tokens = [token for token in (normalize(raw) for raw in segment.text.split()) if token]
        if not tokens:
            continue
        match = _match_tokens(tokens, stream, cursor, threshold, window)
        if match is None:
            logger.debug("No word match for segment %d", index)
            continue
        begin, end = match
        matched = [dataclasses.replace(word) for _, word in stream[begin:end]]
        cursor = end
        if matched[-1].stop_ms <= matched[0].start_ms:
            logger.debug("Matched words for segment %d have no duration", index)
            continue
        changes.append((segment, matched))

    if not changes:
        return 0
    snapshot = document.snapshot()
    for segment, matched in changes:
        segment.start_ms = matched[0].start_ms
        segment.stop_ms = matched[-1].stop_ms
        segment.words = matched
    document.sort()
    try:
        resolve_violations(document)
    except BoundaryViolation:
        document.restore(snapshot)
        raise
    for segment, _ in changes:
        document.notify_edit(segment)
    logger.info("Retimed %d of %d segments from word data", len(changes), last - first + 1)
    return len(changes)
