"""Structural edits: merge, split and crop segments."""

from __future__ import annotations

import copy
import re
from typing import List, Optional, Tuple

from subtiming.services.errors import BoundaryViolation
from subtiming.services.subtitles import Document, Segment


def merge(document: Document, first: int, last: int) -> Segment:
    """Merge the contiguous segments first..last (inclusive) into one.

    Text is joined with single spaces. The first comment of the range is kept
    before the merged segment, later ones are rendered right after it.
    """
    first, last = document.resolve_range(first, last)
    if last <= first:
        raise ValueError("Merging needs at least two segments")
    targets = document.segments[first : last + 1]
    comments: List[str] = []
    for segment in targets:
        comments.extend(segment.all_comments())
    merged = Segment(
        start_ms=min(segment.start_ms for segment in targets),
        stop_ms=max(segment.stop_ms for segment in targets),
        text=" ".join(segment.text.strip() for segment in targets if segment.text.strip()),
        id=targets[0].id,
        comment=comments[0] if comments else None,
        after_comments=comments[1:],
        words=[word for segment in targets for word in segment.words],
        extra=dict(targets[0].extra),
    )
    document.replace_range(first, last, [merged])
    document.notify_edit(merged)
    return merged


def merge_at_point(
    document: Document, index: int, at_segment_start: bool = False, count: int = 1
) -> Segment:
    """Merge without a selection: the segment at point absorbs the next ``count`` ones.

    When point sits at the very start of ``index``, that segment is left out
    and only the segments following it are merged.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    first = index + 1 if at_segment_start else index
    return merge(document, first, first + count)


def _nearest_word_break(text: str, target: int) -> int:
    breaks = [match.start() for match in re.finditer(r"\s+", text) if 0 < match.start() < len(text)]
    if not breaks:
        return min(max(target, 1), max(len(text) - 1, 1))
    return min(breaks, key=lambda position: abs(position - target))


def split(
    document: Document,
    index: int,
    offset: Optional[int] = None,
    timestamp_ms: Optional[int] = None,
) -> Tuple[Segment, Segment]:
    """Split one segment in two, at a character offset or an explicit time.

    With only an offset the split time is interpolated over the text length;
    with only a timestamp the text breaks at the nearest word boundary.
    """
    if offset is None and timestamp_ms is None:
        raise ValueError("Pass a character offset or a timestamp to split at")
    segment = document.segment(index)
    text = segment.text
    if offset is not None and not 0 < offset < len(text):
        raise ValueError(f"Split offset {offset} is outside the text (1..{len(text) - 1})")
    if timestamp_ms is not None:
        split_ms = int(timestamp_ms)
        if not segment.start_ms < split_ms < segment.stop_ms:
            raise BoundaryViolation(index, split_ms, "split point outside the segment")
        if offset is None and len(text) > 1:
            ratio = (split_ms - segment.start_ms) / segment.duration_ms
            offset = _nearest_word_break(text, int(round(len(text) * ratio)))
    else:
        split_ms = segment.start_ms + int(round(segment.duration_ms * offset / len(text)))
    if split_ms - segment.start_ms < document.min_duration_ms:
        raise BoundaryViolation(index, split_ms, "first half would be too short")
    if offset is None:
        first_text, second_text = text, ""
    else:
        first_text, second_text = text[:offset].rstrip(), text[offset:].lstrip()
    second_start = max(
        min(split_ms + max(document.spacing_ms, 0), segment.stop_ms - document.min_duration_ms), split_ms
    )
    if segment.stop_ms - second_start < document.min_duration_ms:
        raise BoundaryViolation(index, split_ms, "second half would be too short")
    second = Segment(
        start_ms=second_start,
        stop_ms=segment.stop_ms,
        text=second_text,
        after_comments=segment.after_comments,
        words=[word for word in segment.words if word.start_ms >= split_ms],
        extra=copy.deepcopy(segment.extra),
    )
    segment.stop_ms = split_ms
    segment.text = first_text
    segment.after_comments = []
    segment.words = [word for word in segment.words if word.start_ms < split_ms]
    document.segments.insert(index + 1, second)
    document.sort()
    document.notify_edit(segment)
    document.notify_edit(second)
    return segment, second


def crop(document: Document, start_ms: int, stop_ms: int, rebase: bool = False) -> int:
    """Restrict the document to [start_ms, stop_ms]; returns how many segments were dropped.

    Segments partially inside are clipped to the window. Comments of dropped
    segments move to the next surviving segment.
    """
    if stop_ms <= start_ms:
        raise ValueError("Crop window must end after it starts")
    kept: List[Segment] = []
    carried: List[str] = []
    dropped = 0
    for segment in document.segments:
        if segment.stop_ms <= start_ms or segment.start_ms >= stop_ms:
            carried.extend(segment.all_comments())
            dropped += 1
            continue
        if carried:
            segment.comment = "\n".join(carried + ([segment.comment] if segment.comment else []))
            carried = []
        segment.start_ms = max(segment.start_ms, start_ms)
        segment.stop_ms = min(segment.stop_ms, stop_ms)
        kept.append(segment)
    if carried and kept:
        kept[-1].after_comments.extend(carried)
    if rebase:
        for segment in kept:
            segment.start_ms -= start_ms
            segment.stop_ms -= start_ms
            for word in segment.words:
                word.start_ms -= start_ms
                word.stop_ms -= start_ms
    document.segments = kept
    document.sort()
    for segment in kept:
        document.notify_edit(segment)
    return dropped
