"""Forced alignment of subtitle text against audio with an aeneas-compatible tool.

The target segments' text is written to a temporary file, one unit per
segment separated by blank lines. The tool writes its timings to a second
temporary file in a subtitle format we can parse back. Results are applied
to the targets by position, so counts must match exactly.
"""

from __future__ import annotations

import logging
import re
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Set, Tuple

from subtiming.config import ALIGN_COMMAND, ALIGN_LANGUAGE, ALIGN_OPTIONS, ALIGN_TIMEOUT_SEC
from subtiming.services.boundaries import resolve_violations
from subtiming.services.errors import (
    AlignmentInProgress,
    BoundaryViolation,
    ExternalToolFailure,
    ReconciliationMismatch,
)
from subtiming.services.formats import get_adapter
from subtiming.services.subtitles import Document, Segment
from subtiming.services.timestamps import ms_to_seconds

logger = logging.getLogger(__name__)

# ASS output is not offered by the tool; SRT carries the same timing.
OUTPUT_FORMATS = {"srt": "srt", "ass": "srt", "vtt": "vtt", "tsv": "tsv"}

_active_documents: Set[str] = set()
_active_lock = threading.Lock()


@dataclass
class AlignmentRequest:
    audio_path: Path
    head_seconds: float
    length_seconds: float
    language: str
    output_format: str
    options: str = ""

    def option_string(self) -> str:
        pairs = [
            f"is_audio_file_head_length={self.head_seconds:.3f}",
            f"is_audio_file_process_length={self.length_seconds:.3f}",
            f"task_language={self.language}",
            f"os_task_file_format={self.output_format}",
            "is_text_type=subtitles",
        ]
        if self.options:
            pairs.append(self.options)
        return "|".join(pairs)


@dataclass
class AlignmentResult:
    pairs: List[Tuple[int, int]] = field(default_factory=list)
    texts: List[str] = field(default_factory=list)


def plain_text(segment: Segment, fmt: str) -> str:
    text = segment.text
    if fmt == "ass":
        text = re.sub(r"\{[^}]*\}", "", text)
    return "\n".join(line.strip() for line in text.split("\n") if line.strip())


def fingerprint(text: str) -> str:
    return " ".join(text.split())


def build_request(
    document: Document,
    targets: Sequence[Segment],
    audio_path: Path,
    language: Optional[str] = None,
    options: Optional[str] = None,
) -> AlignmentRequest:
    head_ms = targets[0].start_ms
    return AlignmentRequest(
        audio_path=Path(audio_path),
        head_seconds=ms_to_seconds(head_ms),
        length_seconds=ms_to_seconds(targets[-1].stop_ms - head_ms),
        language=language or ALIGN_LANGUAGE,
        output_format=OUTPUT_FORMATS[document.format],
        options=ALIGN_OPTIONS if options is None else options,
    )


@contextmanager
def _alignment_slot(document: Document) -> Iterator[None]:
    with _active_lock:
        if document.document_id in _active_documents:
            raise AlignmentInProgress(f"Alignment already running for document {document.document_id}")
        _active_documents.add(document.document_id)
    try:
        yield
    finally:
        with _active_lock:
            _active_documents.discard(document.document_id)


@contextmanager
def _transient_artifacts(output_format: str) -> Iterator[Tuple[Path, Path]]:
    """Yield fresh input/output paths and remove both on every exit path."""
    paths: List[Path] = []
    try:
        for suffix in (".txt", f".{output_format}"):
            handle = tempfile.NamedTemporaryFile(prefix="subtiming-align-", suffix=suffix, delete=False)
            handle.close()
            paths.append(Path(handle.name))
        yield paths[0], paths[1]
    finally:
        for path in paths:
            path.unlink(missing_ok=True)


def run_alignment(
    request: AlignmentRequest,
    input_path: Path,
    output_path: Path,
    command: Optional[Sequence[str]] = None,
    runner: Callable = subprocess.run,
    timeout: int = ALIGN_TIMEOUT_SEC,
) -> AlignmentResult:
    """Invoke the tool once and parse its output. Failures are not retried."""
    args = list(command or ALIGN_COMMAND) + [
        str(request.audio_path),
        str(input_path),
        request.option_string(),
        str(output_path),
    ]
    logger.info("Running alignment: %s", " ".join(args))
    try:
        result = runner(args, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise ExternalToolFailure(f"Alignment timed out after {timeout}s") from exc
    except OSError as exc:
        raise ExternalToolFailure(f"Could not start alignment tool: {exc}") from exc
    if result.returncode != 0:
        raise ExternalToolFailure(
            f"Alignment tool exited with status {result.returncode}",
            returncode=result.returncode,
            stderr=(result.stderr or "")[-2000:],
        )
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise ExternalToolFailure("Alignment tool produced no output", returncode=result.returncode)
    parsed = get_adapter(request.output_format).parse_document(output_path.read_text(encoding="utf-8-sig"))
    pairs = [(segment.start_ms, segment.stop_ms) for segment in parsed.segments]
    # TSV output carries fragment ids instead of text.
    if request.output_format == "tsv":
        return AlignmentResult(pairs=pairs)
    return AlignmentResult(pairs=pairs, texts=[segment.text for segment in parsed.segments])


def apply_result(
    document: Document, targets: Sequence[Segment], units: Sequence[str], result: AlignmentResult
) -> None:
    """Retime ``targets`` positionally from ``result``; all or nothing."""
    if len(result.pairs) != len(targets):
        raise ReconciliationMismatch(
            f"Alignment returned {len(result.pairs)} timings for {len(targets)} segments",
            expected=len(targets),
            actual=len(result.pairs),
        )
    for position, returned in enumerate(result.texts):
        if returned.strip() and fingerprint(returned) != fingerprint(units[position]):
            raise ReconciliationMismatch(
                f"Alignment output unit {position + 1} does not match its input text",
                expected=len(targets),
                actual=len(result.pairs),
            )
    snapshot = document.snapshot()
    for segment, (start_ms, stop_ms) in zip(targets, result.pairs):
        segment.start_ms = start_ms
        segment.stop_ms = stop_ms
    document.sort()
    try:
        resolve_violations(document)
    except BoundaryViolation:
        document.restore(snapshot)
        raise
    for segment in targets:
        document.notify_edit(segment)


def align_document(
    document: Document,
    audio_path: Path,
    first: Optional[int] = None,
    last: Optional[int] = None,
    language: Optional[str] = None,
    options: Optional[str] = None,
    command: Optional[Sequence[str]] = None,
    runner: Callable = subprocess.run,
    timeout: int = ALIGN_TIMEOUT_SEC,
) -> AlignmentResult:
    """Align segments first..last (the whole document by default) against audio.

    Blocks until the tool exits. Raises AlignmentInProgress when another
    alignment for the same document is still running.
    """
    with _alignment_slot(document):
        targets = document.range(first, last)
        units = [plain_text(segment, document.format) for segment in targets]
        request = build_request(document, targets, audio_path, language, options)
        with _transient_artifacts(request.output_format) as (input_path, output_path):
            input_path.write_text("\n\n".join(units) + "\n", encoding="utf-8")
            result = run_alignment(request, input_path, output_path, command, runner, timeout)
        apply_result(document, targets, units, result)
    logger.info("Aligned %d segments of document %s", len(targets), document.document_id)
    return result
