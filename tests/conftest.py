# tests/conftest.py
import subprocess
from pathlib import Path

import pytest

from subtiming.services.subtitles import Document, Segment


SRT_SAMPLE = """1
00:00:01,000 --> 00:00:02,000
Hello there.

# speaker change

2
00:00:02,500 --> 00:00:04,000
General Kenobi.
42

3
00:00:04,500 --> 00:00:06,000
You are a bold one.
"""

VTT_SAMPLE = """WEBVTT

STYLE
::cue { color: yellow }

intro
00:01.000 --> 00:02.000 align:start
Hello there.

NOTE this is a note, not a cue

00:00:02.500 --> 00:00:04.000
General Kenobi.
NOTE inside text is just text
"""

ASS_SAMPLE = """[Script Info]
ScriptType: v4.00+
PlayResX: 1280
PlayResY: 720

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding
Style: Main,Arial,40,&H00FFFFFF,&H00FFFFFF,&H00000000,&H00000000,0,0,0,0,100,100,0,0,1,2,0,2,10,10,10,1

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
Dialogue: 0,0:00:01.00,0:00:02.00,Main,,0,0,0,,Hello, there.
; translator note
Dialogue: 0,0:00:02.50,0:00:04.00,Main,Obi,0,0,0,,General\\NKenobi.
"""

TSV_SAMPLE = "1.000000\t2.000000\tHello there.\n2.500000\t4.000000\tGeneral Kenobi.\n"


@pytest.fixture
def make_document():
    """Build a document from (start_ms, stop_ms, text) triples."""

    def _make(rows, fmt="srt", policy="adjust", spacing_ms=0):
        segments = [Segment(start_ms=start, stop_ms=stop, text=text) for start, stop, text in rows]
        return Document(format=fmt, segments=segments, policy=policy, spacing_ms=spacing_ms)

    return _make


@pytest.fixture
def documents_dir(tmp_path, monkeypatch):
    """Point document persistence at a temporary directory."""
    target = tmp_path / "documents"
    target.mkdir()
    monkeypatch.setattr("subtiming.services.subtitles.DOCUMENTS_DIR", target)
    return target


class FakeAligner:
    """Stands in for the alignment tool: records calls and writes canned output."""

    def __init__(self, output="", returncode=0, stderr=""):
        self.output = output
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []
        self.inputs = []

    def __call__(self, args, **kwargs):
        self.calls.append(list(args))
        input_path, output_path = Path(args[-3]), Path(args[-1])
        self.inputs.append(input_path.read_text(encoding="utf-8"))
        if self.output:
            output_path.write_text(self.output, encoding="utf-8")
        return subprocess.CompletedProcess(args, self.returncode, stdout="", stderr=self.stderr)


@pytest.fixture
def fake_aligner():
    return FakeAligner
