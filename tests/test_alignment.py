import subprocess
from pathlib import Path

import pytest

from subtiming.services.alignment import AlignmentRequest, align_document
from subtiming.services.errors import AlignmentInProgress, ExternalToolFailure, ReconciliationMismatch

ALIGNED_SRT = """1
00:00:00,100 --> 00:00:00,900
one

2
00:00:01,100 --> 00:00:01,900
two

3
00:00:02,100 --> 00:00:02,900
three
"""


def _times(document):
    return [(seg.start_ms, seg.stop_ms) for seg in document]


@pytest.fixture
def audio(tmp_path):
    path = tmp_path / "audio.wav"
    path.write_bytes(b"RIFF")
    return path


@pytest.fixture
def three(make_document):
    return make_document([(0, 1000, "one"), (1000, 2000, "two"), (2000, 3000, "three")])


def _artifacts_removed(call):
    return not Path(call[-3]).exists() and not Path(call[-1]).exists()


def test_option_string():
    request = AlignmentRequest(Path("a.wav"), 1.5, 2.25, "deu", "vtt", "task_adjust_boundary_algorithm=percent")
    assert request.option_string() == (
        "is_audio_file_head_length=1.500|is_audio_file_process_length=2.250|task_language=deu"
        "|os_task_file_format=vtt|is_text_type=subtitles|task_adjust_boundary_algorithm=percent"
    )


def test_pairs_are_applied_in_order(three, audio, fake_aligner):
    runner = fake_aligner(ALIGNED_SRT)
    result = align_document(three, audio, options="", command=["aligner"], runner=runner)

    assert result.pairs == [(100, 900), (1100, 1900), (2100, 2900)]
    assert _times(three) == [(100, 900), (1100, 1900), (2100, 2900)]
    call = runner.calls[0]
    assert call[:2] == ["aligner", str(audio)]
    assert call[3] == (
        "is_audio_file_head_length=0.000|is_audio_file_process_length=3.000|task_language=eng"
        "|os_task_file_format=srt|is_text_type=subtitles"
    )
    assert runner.inputs[0] == "one\n\ntwo\n\nthree\n"
    assert _artifacts_removed(call)


def test_count_mismatch_leaves_document_unchanged(three, audio, fake_aligner):
    two_pairs = ALIGNED_SRT.split("\n\n3\n")[0] + "\n"
    runner = fake_aligner(two_pairs)
    with pytest.raises(ReconciliationMismatch) as excinfo:
        align_document(three, audio, command=["aligner"], runner=runner)
    assert (excinfo.value.expected, excinfo.value.actual) == (3, 2)
    assert _times(three) == [(0, 1000), (1000, 2000), (2000, 3000)]
    assert _artifacts_removed(runner.calls[0])


def test_text_fingerprint_mismatch(three, audio, fake_aligner):
    runner = fake_aligner(ALIGNED_SRT.replace("two", "deux"))
    with pytest.raises(ReconciliationMismatch):
        align_document(three, audio, command=["aligner"], runner=runner)
    assert _times(three) == [(0, 1000), (1000, 2000), (2000, 3000)]


def test_contiguous_output_is_spaced_under_default_spacing(make_document, audio, fake_aligner):
    document = make_document([(0, 1000, "one"), (1000, 2000, "two"), (2000, 3000, "three")], spacing_ms=100)
    output = (
        "1\n00:00:00,000 --> 00:00:01,000\none\n\n"
        "2\n00:00:01,000 --> 00:00:02,000\ntwo\n\n"
        "3\n00:00:02,000 --> 00:00:03,000\nthree\n"
    )
    result = align_document(document, audio, command=["aligner"], runner=fake_aligner(output))
    assert result.pairs == [(0, 1000), (1000, 2000), (2000, 3000)]
    # Each stop is pulled back to leave the spacing; starts are kept.
    assert _times(document) == [(0, 900), (1000, 1900), (2000, 3000)]


def test_contiguous_output_is_kept_without_boundary_policy(make_document, audio, fake_aligner):
    document = make_document(
        [(0, 1000, "one"), (1000, 2000, "two")], policy="none", spacing_ms=100
    )
    output = "1\n00:00:00,000 --> 00:00:01,000\none\n\n2\n00:00:01,000 --> 00:00:02,000\ntwo\n"
    align_document(document, audio, command=["aligner"], runner=fake_aligner(output))
    assert _times(document) == [(0, 1000), (1000, 2000)]


def test_subrange_request(three, audio, fake_aligner):
    output = "1\n00:00:01,050 --> 00:00:01,950\ntwo\n\n2\n00:00:02,050 --> 00:00:02,950\nthree\n"
    runner = fake_aligner(output)
    align_document(three, audio, first=1, last=2, options="", command=["aligner"], runner=runner)
    assert _times(three) == [(0, 1000), (1050, 1950), (2050, 2950)]
    assert "is_audio_file_head_length=1.000|is_audio_file_process_length=2.000" in runner.calls[0][3]


def test_comments_stay_with_their_segments(three, audio, fake_aligner):
    three.segments[1].comment = "keep me"
    align_document(three, audio, command=["aligner"], runner=fake_aligner(ALIGNED_SRT))
    assert three.segments[1].comment == "keep me"
    assert three.segments[1].text == "two"


def test_ass_documents_align_through_srt(make_document, audio, fake_aligner):
    document = make_document([(0, 1000, "{\\i1}one{\\i0}"), (1000, 2000, "two")], fmt="ass")
    output = "1\n00:00:00,100 --> 00:00:00,900\none\n\n2\n00:00:01,100 --> 00:00:01,900\ntwo\n"
    runner = fake_aligner(output)
    align_document(document, audio, options="", command=["aligner"], runner=runner)
    assert "os_task_file_format=srt" in runner.calls[0][3]
    assert runner.inputs[0] == "one\n\ntwo\n"
    assert _times(document) == [(100, 900), (1100, 1900)]


def test_tsv_output_uses_fragment_ids(make_document, audio, fake_aligner):
    document = make_document([(0, 1000, "one"), (1000, 2000, "two")], fmt="tsv")
    runner = fake_aligner("0.100\t0.900\tf000001\n1.100\t1.900\tf000002\n")
    align_document(document, audio, command=["aligner"], runner=runner)
    assert _times(document) == [(100, 900), (1100, 1900)]


def test_tool_failure_is_reported(three, audio, fake_aligner):
    runner = fake_aligner(returncode=2, stderr="Traceback...\nAudio file not readable\n")
    with pytest.raises(ExternalToolFailure) as excinfo:
        align_document(three, audio, command=["aligner"], runner=runner)
    assert excinfo.value.returncode == 2
    assert "not readable" in excinfo.value.stderr
    assert len(runner.calls) == 1
    assert _artifacts_removed(runner.calls[0])
    assert _times(three) == [(0, 1000), (1000, 2000), (2000, 3000)]


def test_missing_output_is_reported(three, audio, fake_aligner):
    with pytest.raises(ExternalToolFailure):
        align_document(three, audio, command=["aligner"], runner=fake_aligner(""))


def test_timeout_is_reported(three, audio):
    def runner(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs.get("timeout"))

    with pytest.raises(ExternalToolFailure):
        align_document(three, audio, command=["aligner"], runner=runner, timeout=1)


def test_concurrent_alignment_is_rejected(three, audio, fake_aligner):
    inner = fake_aligner(ALIGNED_SRT)
    nested_errors = []

    def runner(args, **kwargs):
        try:
            align_document(three, audio, command=["aligner"], runner=inner)
        except AlignmentInProgress as exc:
            nested_errors.append(exc)
        return inner(args, **kwargs)

    align_document(three, audio, command=["aligner"], runner=runner)
    assert len(nested_errors) == 1
    assert _times(three) == [(100, 900), (1100, 1900), (2100, 2900)]

    # The slot is released afterwards.
    align_document(three, audio, command=["aligner"], runner=fake_aligner(ALIGNED_SRT))
