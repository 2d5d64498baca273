"""Format adapters: parse and serialize SRT, WebVTT, ASS/SSA and TSV documents."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from subtiming.services.errors import MalformedTimestamp, UnrecognizedFormat
from subtiming.services.subtitles import Document, Segment
from subtiming.services.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

TIMING_LINE = re.compile(r"^\s*(\S+)\s+-->\s+(\S+)(?:\s+(.*?))?\s*$")

DEFAULT_ASS_HEADER = "\n".join(
    [
        "[Script Info]",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "PlayResX: 1920",
        "PlayResY: 1080",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, "
        "Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, "
        "MarginR, MarginV, Encoding",
        "Style: Default,Arial,48,&H00FFFFFF,&H00FFFFFF,&H00000000,&H00000000,-1,0,0,0,100,100,0,0,1,2,0,2,80,80,50,1",
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]
)
ASS_EVENT_DEFAULTS = {
    "Layer": "0",
    "Marked": "Marked=0",
    "Style": "Default",
    "Name": "",
    "MarginL": "0",
    "MarginR": "0",
    "MarginV": "0",
    "Effect": "",
}


@dataclass
class ParsedDocument:
    segments: List[Segment]
    header: Optional[str] = None


def _normalize_newlines(text: str) -> str:
    return text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")


def _split_blocks(text: str) -> List[Tuple[int, List[str]]]:
    """Split text into blank-line separated blocks, keeping 1-based start line numbers."""
    blocks: List[Tuple[int, List[str]]] = []
    current: List[str] = []
    start_line = 1
    for line_no, line in enumerate(_normalize_newlines(text).split("\n"), start=1):
        if line.strip():
            if not current:
                start_line = line_no
            current.append(line.rstrip())
            continue
        if current:
            blocks.append((start_line, current))
            current = []
    if current:
        blocks.append((start_line, current))
    return blocks


def _parse_timing_line(line: str, fmt: str, line_no: int) -> Tuple[int, int, str]:
    match = TIMING_LINE.match(line)
    if not match:
        raise MalformedTimestamp(line.strip(), fmt, line_no)
    start = parse_timestamp(match.group(1), fmt, line_no)
    stop = parse_timestamp(match.group(2), fmt, line_no)
    return start, stop, match.group(3) or ""


def _attach_comments(segments: List[Segment], pending: List[str], fmt: str) -> None:
    """Attach comments found after the last cue to that cue."""
    if not pending:
        return
    if segments:
        segments[-1].after_comments.extend(pending)
    else:
        logger.debug("Dropping %d %s comment(s) in a document without cues", len(pending), fmt)


class SubtitleFormat:
    """Base adapter: one subclass per supported wire format."""

    name = ""
    extensions: Tuple[str, ...] = ()

    def detect(self, text: str) -> bool:
        raise NotImplementedError

    def parse_document(self, text: str) -> ParsedDocument:
        raise NotImplementedError

    def serialize_document(self, segments: List[Segment], header: Optional[str] = None) -> str:
        raise NotImplementedError


class BlockFormat(SubtitleFormat):
    """Shared parsing for blank-line separated cue formats (SRT, VTT)."""

    def _comment_text(self, lines: List[str]) -> Optional[str]:
        raise NotImplementedError

    def _render_comment(self, comment: str) -> str:
        raise NotImplementedError

    def _header_blocks(self, blocks: List[Tuple[int, List[str]]]) -> Tuple[Optional[str], int, List[str]]:
        """Return (header, index of the first cue block, comments met inside the header)."""
        return None, 0, []

    def parse_document(self, text: str) -> ParsedDocument:
        blocks = _split_blocks(text)
        header, first_block, pending = self._header_blocks(blocks)
        segments: List[Segment] = []
        for line_no, lines in blocks[first_block:]:
            comment = self._comment_text(lines)
            if comment is not None:
                pending.append(comment)
                continue
            timing_index = next((i for i, line in enumerate(lines) if "-->" in line), None)
            if timing_index is None:
                if segments and not pending:
                    # A blank line inside cue text; keep it with the previous cue.
                    segments[-1].text = f"{segments[-1].text}\n\n" + "\n".join(lines)
                    continue
                raise MalformedTimestamp(lines[0].strip(), self.name, line_no)
            if timing_index > 1:
                raise MalformedTimestamp(lines[timing_index - 1].strip(), self.name, line_no + timing_index - 1)
            start, stop, settings = _parse_timing_line(lines[timing_index], self.name, line_no + timing_index)
            segment = Segment(
                start_ms=start,
                stop_ms=stop,
                text="\n".join(lines[timing_index + 1 :]),
                id=lines[0].strip() if timing_index == 1 else None,
            )
            if settings:
                segment.extra["settings"] = settings
            if pending:
                segment.comment = "\n".join(pending)
                pending = []
            segments.append(segment)
        _attach_comments(segments, pending, self.name)
        return ParsedDocument(segments=segments, header=header)

    def _cue_lines(self, index: int, segment: Segment) -> List[str]:
        raise NotImplementedError

    def _serialize_blocks(self, segments: List[Segment]) -> List[str]:
        blocks: List[str] = []
        for index, segment in enumerate(segments, start=1):
            if segment.comment:
                blocks.append(self._render_comment(segment.comment))
            blocks.append("\n".join(self._cue_lines(index, segment)))
            for comment in segment.after_comments:
                if comment:
                    blocks.append(self._render_comment(comment))
        return blocks


class SrtFormat(BlockFormat):
    """SubRip. Comments are blocks of lines starting with ``#``."""

    name = "srt"
    extensions = (".srt",)

    def detect(self, text: str) -> bool:
        for _, lines in _split_blocks(text)[:5]:
            for line in lines[:2]:
                match = TIMING_LINE.match(line)
                if match and "," in match.group(1):
                    return True
        return False

    def _comment_text(self, lines: List[str]) -> Optional[str]:
        if any("-->" in line for line in lines) or not all(line.startswith("#") for line in lines):
            return None
        return "\n".join(re.sub(r"^# ?", "", line) for line in lines)

    def _render_comment(self, comment: str) -> str:
        return "\n".join(f"# {line}".rstrip() for line in comment.split("\n"))

    def _cue_lines(self, index: int, segment: Segment) -> List[str]:
        timing = f"{format_timestamp(segment.start_ms, 'srt')} --> {format_timestamp(segment.stop_ms, 'srt')}"
        if segment.extra.get("settings"):
            timing = f"{timing} {segment.extra['settings']}"
        return [str(index), timing] + segment.lines

    def serialize_document(self, segments: List[Segment], header: Optional[str] = None) -> str:
        blocks = self._serialize_blocks(segments)
        if not blocks:
            return ""
        return "\n\n".join(blocks) + "\n"


class VttFormat(BlockFormat):
    """WebVTT. Comments are ``NOTE`` blocks; STYLE/REGION blocks stay in the header."""

    name = "vtt"
    extensions = (".vtt",)

    def detect(self, text: str) -> bool:
        return _normalize_newlines(text).lstrip().startswith("WEBVTT")

    def _header_blocks(self, blocks: List[Tuple[int, List[str]]]) -> Tuple[Optional[str], int, List[str]]:
        if not blocks or not blocks[0][1][0].startswith("WEBVTT"):
            return None, 0, []
        header_parts = ["\n".join(blocks[0][1])]
        notes: List[str] = []
        index = 1
        while index < len(blocks):
            lines = blocks[index][1]
            # NOTE blocks may sit before or between STYLE/REGION blocks.
            comment = self._comment_text(lines)
            if comment is not None:
                notes.append(comment)
            elif lines[0].strip() in {"STYLE", "REGION"}:
                header_parts.append("\n".join(lines))
            else:
                break
            index += 1
        return "\n\n".join(header_parts), index, notes

    def _comment_text(self, lines: List[str]) -> Optional[str]:
        first = lines[0]
        if not (first == "NOTE" or first.startswith("NOTE ") or first.startswith("NOTE\t")):
            return None
        if any("-->" in line for line in lines):
            return None
        body = [first[4:].strip()] if first[4:].strip() else []
        return "\n".join(body + lines[1:])

    def _render_comment(self, comment: str) -> str:
        if "\n" in comment:
            return f"NOTE\n{comment}"
        return f"NOTE {comment}"

    def _cue_lines(self, index: int, segment: Segment) -> List[str]:
        lines = [segment.id] if segment.id else []
        timing = f"{format_timestamp(segment.start_ms, 'vtt')} --> {format_timestamp(segment.stop_ms, 'vtt')}"
        if segment.extra.get("settings"):
            timing = f"{timing} {segment.extra['settings']}"
        return lines + [timing] + segment.lines

    def serialize_document(self, segments: List[Segment], header: Optional[str] = None) -> str:
        blocks = [header or "WEBVTT"] + self._serialize_blocks(segments)
        return "\n\n".join(blocks) + "\n"


class AssFormat(SubtitleFormat):
    """Advanced SubStation Alpha (and SSA v4).

    Comments are ``;`` lines in [Events]. ``Comment:`` events are timed
    events the renderer skips; they stay segments with ``extra["Event"]``
    set so they serialize back as ``Comment:``.
    """

    name = "ass"
    extensions = (".ass", ".ssa")

    def detect(self, text: str) -> bool:
        normalized = _normalize_newlines(text)
        if re.search(r"^\[(Script Info|Events)\]", normalized, re.M | re.I):
            return True
        # Bare event lines only count when nothing looks like an SRT/VTT cue.
        return bool(re.search(r"^Dialogue:", normalized, re.M)) and "-->" not in normalized

    def parse_document(self, text: str) -> ParsedDocument:
        header_lines: List[str] = []
        fields: List[str] = []
        segments: List[Segment] = []
        pending: List[str] = []
        section = ""
        for line_no, raw in enumerate(_normalize_newlines(text).split("\n"), start=1):
            line = raw.rstrip()
            if re.match(r"^\[.+\]$", line.strip()):
                section = line.strip().lower()
                if section != "[events]":
                    header_lines.append(line.strip())
                continue
            if section != "[events]":
                if section or line.strip():
                    header_lines.append(line)
                continue
            if not line.strip():
                continue
            if line.startswith(";"):
                pending.append(line[1:].strip())
                continue
            key, _, value = line.partition(":")
            key = key.strip()
            if key == "Format":
                fields = [item.strip() for item in value.split(",")]
                continue
            if key not in {"Dialogue", "Comment"}:
                continue
            if not fields:
                fields = [item.strip() for item in DEFAULT_ASS_HEADER.split("\n")[-1].partition(":")[2].split(",")]
            raw_values = value.lstrip().split(",", len(fields) - 1)
            event = {
                name: item if name == "Text" else item.strip() for name, item in zip(fields, raw_values)
            }
            event_text = event.get("Text", "").replace("\\N", "\n").replace("\\n", "\n")
            if "Start" not in event or "End" not in event:
                raise MalformedTimestamp(line, self.name, line_no)
            segment = Segment(
                start_ms=parse_timestamp(event["Start"], self.name, line_no),
                stop_ms=parse_timestamp(event["End"], self.name, line_no),
                text=event_text,
                extra={name: val for name, val in event.items() if name not in {"Start", "End", "Text"}},
            )
            if key == "Comment":
                segment.extra["Event"] = key
            if pending:
                segment.comment = "\n".join(pending)
                pending = []
            segments.append(segment)
        _attach_comments(segments, pending, self.name)
        while header_lines and not header_lines[-1].strip():
            header_lines.pop()
        header = None
        if header_lines or fields:
            format_line = "Format: " + ", ".join(fields) if fields else DEFAULT_ASS_HEADER.split("\n")[-1]
            header = "\n".join(header_lines + ["", "[Events]", format_line]).lstrip("\n")
        return ParsedDocument(segments=segments, header=header)

    def _event_fields(self, header: str) -> List[str]:
        for line in reversed(header.split("\n")):
            if line.startswith("Format:"):
                return [item.strip() for item in line.partition(":")[2].split(",")]
        return []

    def serialize_document(self, segments: List[Segment], header: Optional[str] = None) -> str:
        header = header or DEFAULT_ASS_HEADER
        fields = self._event_fields(header)
        lines = [header]
        for segment in segments:
            if segment.comment:
                lines.extend(f"; {item}" for item in segment.comment.split("\n"))
            values = []
            for name in fields:
                if name == "Start":
                    values.append(format_timestamp(segment.start_ms, self.name))
                elif name == "End":
                    values.append(format_timestamp(segment.stop_ms, self.name))
                elif name == "Text":
                    values.append(segment.text.replace("\n", "\\N"))
                else:
                    values.append(segment.extra.get(name, ASS_EVENT_DEFAULTS.get(name, "")))
            lines.append(f"{segment.extra.get('Event', 'Dialogue')}: " + ",".join(values))
            for comment in segment.after_comments:
                lines.extend(f"; {item}" for item in comment.split("\n"))
        return "\n".join(lines) + "\n"


class TsvFormat(SubtitleFormat):
    """Tab-separated label export: ``start<TAB>stop<TAB>text`` in seconds."""

    name = "tsv"
    extensions = (".tsv", ".txt")
    ROW = re.compile(r"^\d+(?:\.\d+)?\t\d+(?:\.\d+)?(?:\t.*)?$")

    def detect(self, text: str) -> bool:
        rows = [line for line in _normalize_newlines(text).split("\n") if line.strip()]
        return bool(rows) and all(self.ROW.match(row) for row in rows)

    def parse_document(self, text: str) -> ParsedDocument:
        segments: List[Segment] = []
        for line_no, line in enumerate(_normalize_newlines(text).split("\n"), start=1):
            if not line.strip():
                continue
            columns = line.split("\t", 2)
            if len(columns) < 2:
                raise MalformedTimestamp(line.strip(), self.name, line_no)
            segments.append(
                Segment(
                    start_ms=parse_timestamp(columns[0], self.name, line_no),
                    stop_ms=parse_timestamp(columns[1], self.name, line_no),
                    text=columns[2].replace("\\n", "\n") if len(columns) > 2 else "",
                )
            )
        return ParsedDocument(segments=segments)

    def serialize_document(self, segments: List[Segment], header: Optional[str] = None) -> str:
        rows: List[str] = []
        for segment in segments:
            if segment.all_comments():
                logger.debug("TSV has no comment support; dropping comments at %d ms", segment.start_ms)
            text = segment.text.replace("\t", " ").replace("\n", "\\n")
            rows.append(
                f"{format_timestamp(segment.start_ms, self.name)}\t{format_timestamp(segment.stop_ms, self.name)}\t{text}"
            )
        return "\n".join(rows) + "\n" if rows else ""


ADAPTERS: Dict[str, SubtitleFormat] = {
    "srt": SrtFormat(),
    "vtt": VttFormat(),
    "ass": AssFormat(),
    "tsv": TsvFormat(),
}
DETECTION_ORDER = ("vtt", "ass", "srt", "tsv")


def get_adapter(fmt: str) -> SubtitleFormat:
    """Return the adapter for a format tag."""
    adapter = ADAPTERS.get(str(fmt or "").lower().strip())
    if adapter is None:
        raise UnrecognizedFormat(f"Unsupported subtitle format: {fmt}")
    return adapter


def format_for_filename(filename: str) -> Optional[str]:
    suffix = Path(filename).suffix.lower()
    for name, adapter in ADAPTERS.items():
        if suffix in adapter.extensions:
            return name
    return None


def detect_format(text: str, filename: Optional[str] = None) -> str:
    """Inspect content (then the filename) and return the matching format tag."""
    for name in DETECTION_ORDER:
        if ADAPTERS[name].detect(text):
            return name
    # SRT files with "." sub-second separators still carry "-->" lines.
    if any(TIMING_LINE.match(line) for line in _normalize_newlines(text).split("\n")[:50]):
        return "srt"
    if filename:
        fmt = format_for_filename(filename)
        if fmt:
            return fmt
    raise UnrecognizedFormat("Could not detect the subtitle format", hint="Pass the format explicitly.")


def parse_text(
    text: str,
    fmt: Optional[str] = None,
    filename: Optional[str] = None,
    **settings,
) -> Document:
    """Parse subtitle text into a Document, detecting the format when not given."""
    fmt = fmt or detect_format(text, filename)
    parsed = get_adapter(fmt).parse_document(text)
    return Document(format=fmt, segments=parsed.segments, header=parsed.header, **settings)


def serialize(document: Document, fmt: Optional[str] = None) -> str:
    """Render a Document; the stored header is reused only for its own format."""
    fmt = fmt or document.format
    header = document.header if fmt == document.format else None
    return get_adapter(fmt).serialize_document(document.segments, header)


def read_document(path: Path, fmt: Optional[str] = None, **settings) -> Document:
    path = Path(path)
    text = path.read_text(encoding="utf-8-sig")
    document = parse_text(text, fmt, filename=path.name, **settings)
    document.source_path = str(path)
    return document


def write_document(document: Document, path: Path, fmt: Optional[str] = None) -> None:
    path = Path(path)
    fmt = fmt or format_for_filename(path.name) or document.format
    path.write_text(serialize(document, fmt), encoding="utf-8")
