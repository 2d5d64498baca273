"""Error taxonomy shared by the timing engine and the HTTP layer."""

from __future__ import annotations

from typing import Optional


def error_payload(code: str, message: str, hint: Optional[str] = None) -> dict:
    """Return a user-safe error payload."""
    payload = {"code": code, "message": message}
    if hint:
        payload["hint"] = hint
    return payload


class SubtitleError(Exception):
    """Exception carrying a user-facing error payload."""

    code = "SUBTITLE_ERROR"

    def __init__(self, message: str, hint: Optional[str] = None, log_message: Optional[str] = None) -> None:
        super().__init__(log_message or message)
        self.error_payload = error_payload(self.code, message, hint)


class MalformedTimestamp(SubtitleError):
    """Timestamp text does not match the format's grammar."""

    code = "MALFORMED_TIMESTAMP"

    def __init__(self, text: str, fmt: str, line: Optional[int] = None) -> None:
        where = f" on line {line}" if line is not None else ""
        super().__init__(f"Malformed {fmt.upper()} timestamp {text!r}{where}")
        self.text = text
        self.fmt = fmt
        self.line = line
        if line is not None:
            self.error_payload["line"] = line


class UnrecognizedFormat(SubtitleError):
    """No format adapter claims the input."""

    code = "UNRECOGNIZED_FORMAT"


class BoundaryViolation(SubtitleError):
    """A timing edit was rejected by the boundary policy."""

    code = "BOUNDARY_VIOLATION"

    def __init__(self, index: int, value: int, reason: str) -> None:
        super().__init__(
            f"Segment {index}: {value} ms rejected ({reason})",
            hint="Use the adjust or clip policy to resolve conflicts automatically.",
        )
        self.index = index
        self.value = value
        self.reason = reason
        self.error_payload["index"] = index


class ReconciliationMismatch(SubtitleError):
    """External timing data does not line up with the targeted segments."""

    code = "RECONCILIATION_MISMATCH"

    def __init__(self, message: str, expected: Optional[int] = None, actual: Optional[int] = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ExternalToolFailure(SubtitleError):
    """External process exited non-zero or produced no output."""

    code = "EXTERNAL_TOOL_FAILURE"

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(
            message,
            hint="Check the tool installation and its options, then try again.",
            log_message=f"{message}: {stderr.strip()}" if stderr.strip() else message,
        )
        self.returncode = returncode
        self.stderr = stderr


class AlignmentInProgress(SubtitleError):
    """Another alignment is already running against the same document."""

    code = "ALIGNMENT_IN_PROGRESS"
