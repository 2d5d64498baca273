"""Time boundary enforcement for start/stop/shift edits.

Each edit resolves against the active policy:

- ``none``: write the value unchecked.
- ``error``: reject edits that invert a segment or break spacing.
- ``clip``: bound the value to the closest one that keeps the segment valid.
- ``adjust``: write the value, then repair with one two-segment adjustment
  (the other boundary of the same segment, or the neighbor's adjacent
  boundary). Adjustments never propagate past that one neighbor.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple, Union

from subtiming.services.errors import BoundaryViolation
from subtiming.services.subtitles import Document, Segment

Change = Tuple[Segment, int, int]


class BoundaryPolicy(str, Enum):
    ADJUST = "adjust"
    CLIP = "clip"
    ERROR = "error"
    NONE = "none"


def parse_policy(value: Union[str, BoundaryPolicy, None]) -> BoundaryPolicy:
    """Convert a configuration value to a BoundaryPolicy."""
    if isinstance(value, BoundaryPolicy):
        return value
    text = str(value or "none").strip().lower()
    if text in {"nil", "off", "false"}:
        text = "none"
    try:
        return BoundaryPolicy(text)
    except ValueError as exc:
        raise ValueError(f"Unknown boundary policy: {value}") from exc


def _policy(document: Document, policy: Union[str, BoundaryPolicy, None]) -> BoundaryPolicy:
    return parse_policy(policy if policy is not None else document.policy)


def _check(
    document: Document, index: int, start: int, stop: int, value: int, check_prev: bool, check_next: bool
) -> None:
    spacing = document.spacing_ms
    if start < 0:
        raise BoundaryViolation(index, value, "start before zero")
    if stop - start < document.min_duration_ms:
        raise BoundaryViolation(index, value, "start must be before stop")
    prev = document.previous(index)
    if check_prev and prev is not None and start - prev.stop_ms < spacing:
        raise BoundaryViolation(index, value, f"less than {spacing} ms after the previous segment")
    nxt = document.next(index)
    if check_next and nxt is not None and nxt.start_ms - stop < spacing:
        raise BoundaryViolation(index, value, f"less than {spacing} ms before the next segment")


def _adjust(document: Document, index: int, start: int, stop: int, value: int, moved: str) -> List[Change]:
    """Repair an edit by moving one other boundary; fail if that is not enough."""
    min_duration = document.min_duration_ms
    spacing = document.spacing_ms
    if stop - start < min_duration:
        if moved == "start":
            stop = start + min_duration
        else:
            start = stop - min_duration
    if start < 0:
        raise BoundaryViolation(index, value, "no room before zero")
    changes: List[Change] = [(document.segment(index), start, stop)]
    prev = document.previous(index)
    if prev is not None and start - prev.stop_ms < spacing:
        prev_stop = start - spacing
        if prev_stop - prev.start_ms < min_duration:
            raise BoundaryViolation(index, value, "previous segment would be inverted")
        changes.append((prev, prev.start_ms, prev_stop))
    nxt = document.next(index)
    if nxt is not None and nxt.start_ms - stop < spacing:
        next_start = stop + spacing
        if nxt.stop_ms - next_start < min_duration:
            raise BoundaryViolation(index, value, "next segment would be inverted")
        changes.append((nxt, next_start, nxt.stop_ms))
    return changes


def _commit(document: Document, changes: List[Change]) -> Segment:
    for segment, start, stop in changes:
        segment.start_ms = start
        segment.stop_ms = stop
    document.sort()
    for segment, _, _ in changes:
        document.notify_edit(segment)
    return changes[0][0]


def set_start(
    document: Document, index: int, value: int, policy: Union[str, BoundaryPolicy, None] = None
) -> Segment:
    """Set a segment's start time under the boundary policy."""
    mode = _policy(document, policy)
    segment = document.segment(index)
    value = int(value)
    if mode is BoundaryPolicy.NONE:
        return _commit(document, [(segment, value, segment.stop_ms)])
    if mode is BoundaryPolicy.ERROR:
        _check(document, index, value, segment.stop_ms, value, check_prev=True, check_next=False)
        return _commit(document, [(segment, value, segment.stop_ms)])
    if mode is BoundaryPolicy.CLIP:
        prev = document.previous(index)
        lower = max(0, prev.stop_ms + document.spacing_ms) if prev is not None else 0
        upper = segment.stop_ms - document.min_duration_ms
        if lower > upper:
            raise BoundaryViolation(index, value, "no room for a valid start")
        return _commit(document, [(segment, min(max(value, lower), upper), segment.stop_ms)])
    return _commit(document, _adjust(document, index, max(0, value), segment.stop_ms, value, "start"))


def set_stop(
    document: Document, index: int, value: int, policy: Union[str, BoundaryPolicy, None] = None
) -> Segment:
    """Set a segment's stop time under the boundary policy."""
    mode = _policy(document, policy)
    segment = document.segment(index)
    value = int(value)
    if mode is BoundaryPolicy.NONE:
        return _commit(document, [(segment, segment.start_ms, value)])
    if mode is BoundaryPolicy.ERROR:
        _check(document, index, segment.start_ms, value, value, check_prev=False, check_next=True)
        return _commit(document, [(segment, segment.start_ms, value)])
    if mode is BoundaryPolicy.CLIP:
        nxt = document.next(index)
        lower = segment.start_ms + document.min_duration_ms
        upper: Optional[int] = nxt.start_ms - document.spacing_ms if nxt is not None else None
        if upper is not None and lower > upper:
            raise BoundaryViolation(index, value, "no room for a valid stop")
        clipped = max(value, lower)
        if upper is not None:
            clipped = min(clipped, upper)
        return _commit(document, [(segment, segment.start_ms, clipped)])
    return _commit(document, _adjust(document, index, segment.start_ms, value, value, "stop"))


def shift(
    document: Document, index: int, delta_ms: int, policy: Union[str, BoundaryPolicy, None] = None
) -> Segment:
    """Move a whole segment by ``delta_ms`` under the boundary policy."""
    mode = _policy(document, policy)
    segment = document.segment(index)
    delta = int(delta_ms)
    if mode is BoundaryPolicy.CLIP:
        prev = document.previous(index)
        nxt = document.next(index)
        lower = -segment.start_ms
        if prev is not None:
            lower = max(lower, prev.stop_ms + document.spacing_ms - segment.start_ms)
        upper: Optional[int] = nxt.start_ms - document.spacing_ms - segment.stop_ms if nxt is not None else None
        if upper is not None and lower > upper:
            raise BoundaryViolation(index, delta, "no room to move the segment")
        delta = max(delta, lower)
        if upper is not None:
            delta = min(delta, upper)
    elif mode is BoundaryPolicy.ADJUST:
        delta = max(delta, -segment.start_ms)
    start = segment.start_ms + delta
    stop = segment.stop_ms + delta
    if mode is BoundaryPolicy.ERROR:
        _check(document, index, start, stop, delta, check_prev=True, check_next=True)
    if mode is BoundaryPolicy.ADJUST:
        return _commit(document, _adjust(document, index, start, stop, delta, "shift"))
    return _commit(document, [(segment, start, stop)])


def find_violations(document: Document) -> List[Tuple[int, str]]:
    """List (index, reason) for every segment breaking duration or spacing rules."""
    problems: List[Tuple[int, str]] = []
    for index, segment in enumerate(document.segments):
        if segment.start_ms < 0:
            problems.append((index, "start before zero"))
        if segment.duration_ms < document.min_duration_ms:
            problems.append((index, "start must be before stop"))
        nxt = document.next(index)
        if nxt is not None and nxt.start_ms - segment.stop_ms < document.spacing_ms:
            problems.append((index, f"less than {document.spacing_ms} ms before the next segment"))
    return problems


def _separate(document: Document, index: int, segment: Segment, nxt: Segment) -> None:
    """Move the boundary between ``segment`` and ``nxt`` so both stay valid."""
    spacing = document.spacing_ms
    min_duration = document.min_duration_ms
    lowest = segment.start_ms + min_duration
    highest = nxt.stop_ms - spacing - min_duration
    if lowest > highest:
        raise BoundaryViolation(index, segment.stop_ms, "segment too short to keep spacing")
    if nxt.start_ms - spacing >= lowest:
        boundary = nxt.start_ms - spacing
    elif segment.stop_ms <= highest:
        boundary = segment.stop_ms
    else:
        boundary = min(max((segment.start_ms + nxt.stop_ms - spacing) // 2, lowest), highest)
    segment.stop_ms = boundary
    nxt.start_ms = max(nxt.start_ms, boundary + spacing)


def resolve_violations(document: Document, policy: Union[str, BoundaryPolicy, None] = None) -> int:
    """Bring a whole document in line with the policy; returns the number of edits.

    ``error`` raises on the first violation. ``clip`` and ``adjust`` repair
    each crowded pair by pulling the earlier stop back; if that would invert
    the earlier segment they push the next start forward instead, and when
    neither fits (cues starting together) they split the pair's span in half.
    """
    mode = _policy(document, policy)
    if mode is BoundaryPolicy.NONE:
        return 0
    problems = find_violations(document)
    if mode is BoundaryPolicy.ERROR:
        if problems:
            index, reason = problems[0]
            raise BoundaryViolation(index, document.segment(index).start_ms, reason)
        return 0
    snapshot = document.snapshot()
    edits = 0
    try:
        for index, segment in enumerate(document.segments):
            if segment.start_ms < 0:
                segment.start_ms = 0
                edits += 1
            nxt = document.next(index)
            if nxt is not None and nxt.start_ms - segment.stop_ms < document.spacing_ms:
                _separate(document, index, segment, nxt)
                edits += 1
            if segment.duration_ms < document.min_duration_ms:
                raise BoundaryViolation(index, segment.stop_ms, "segment too short to keep spacing")
    except BoundaryViolation:
        document.restore(snapshot)
        raise
    return edits
