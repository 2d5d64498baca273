import pytest

from subtiming.services.boundaries import (
    BoundaryPolicy,
    find_violations,
    parse_policy,
    resolve_violations,
    set_start,
    set_stop,
    shift,
)
from subtiming.services.errors import BoundaryViolation
from subtiming.services.subtitles import PlaybackLoop


def _times(document):
    return [(seg.start_ms, seg.stop_ms) for seg in document]


@pytest.fixture
def pair(make_document):
    return make_document([(0, 1000, "A"), (1000, 2000, "B")])


def test_parse_policy():
    assert parse_policy("Adjust") is BoundaryPolicy.ADJUST
    assert parse_policy("nil") is BoundaryPolicy.NONE
    assert parse_policy(None) is BoundaryPolicy.NONE
    with pytest.raises(ValueError):
        parse_policy("maybe")


def test_adjust_moves_next_start(pair):
    set_stop(pair, 0, 1500, "adjust")
    assert _times(pair) == [(0, 1500), (1500, 2000)]


def test_adjust_keeps_spacing(make_document):
    document = make_document([(0, 1000, "A"), (1200, 2000, "B")], spacing_ms=100)
    set_start(document, 1, 1000, "adjust")
    assert _times(document) == [(0, 900), (1000, 2000)]


def test_adjust_fixes_inversion_with_other_boundary(pair):
    set_start(pair, 0, 1200, "adjust")
    assert pair.segments[0].stop_ms > pair.segments[0].start_ms
    assert pair.segments[1].start_ms >= pair.segments[0].stop_ms


def test_adjust_touches_only_one_neighbor(make_document):
    document = make_document([(0, 1000, "A"), (1000, 1200, "B"), (1200, 3000, "C")])
    with pytest.raises(BoundaryViolation):
        set_stop(document, 0, 1500, "adjust")
    assert _times(document) == [(0, 1000), (1000, 1200), (1200, 3000)]


def test_error_rejects_and_leaves_document_unchanged(pair):
    with pytest.raises(BoundaryViolation) as excinfo:
        set_stop(pair, 0, 2500, "error")
    assert excinfo.value.index == 0
    assert _times(pair) == [(0, 1000), (1000, 2000)]


def test_error_rejects_inversion(pair):
    with pytest.raises(BoundaryViolation):
        set_start(pair, 1, 2000, "error")


def test_error_accepts_valid_edit(pair):
    set_stop(pair, 0, 900, "error")
    assert _times(pair) == [(0, 900), (1000, 2000)]


def test_clip_bounds_value(pair):
    set_stop(pair, 0, 2500, "clip")
    assert _times(pair) == [(0, 1000), (1000, 2000)]
    set_start(pair, 1, 500, "clip")
    assert pair.segments[1].start_ms == 1000
    set_start(pair, 0, -300, "clip")
    assert pair.segments[0].start_ms == 0


def test_clip_with_negative_spacing_allows_overlap(make_document):
    document = make_document([(0, 1000, "A"), (1000, 2000, "B")], spacing_ms=-200)
    set_stop(document, 0, 1500, "clip")
    assert document.segments[0].stop_ms == 1200


def test_none_writes_unchecked(pair):
    set_stop(pair, 0, 2500, "none")
    assert pair.segments[0].stop_ms == 2500
    assert find_violations(pair)


def test_shift(make_document):
    document = make_document([(0, 1000, "A"), (2000, 3000, "B"), (5000, 6000, "C")], spacing_ms=100)
    shift(document, 1, 500, "error")
    assert document.segments[1].start_ms == 2500
    with pytest.raises(BoundaryViolation):
        shift(document, 1, 2000, "error")
    shift(document, 1, 5000, "clip")
    assert _times(document)[1] == (3900, 4900)
    shift(document, 0, -500, "adjust")
    assert document.segments[0].start_ms == 0


def test_default_policy_comes_from_document(pair):
    pair.policy = "error"
    with pytest.raises(BoundaryViolation):
        set_stop(pair, 0, 2500)


def test_edits_keep_order_and_notify_playback_loop(make_document):
    document = make_document([(0, 1000, "A"), (2000, 3000, "B")])
    loop = PlaybackLoop(document, document.segments[1])
    set_start(document, 1, 1500, "none")
    assert loop.start_ms == 1500
    shift(document, 0, 2500, "none")
    assert [seg.text for seg in document] == ["B", "A"]
    assert loop.start_ms == 1500


def test_resolve_violations(make_document):
    document = make_document([(0, 1200, "A"), (1000, 2000, "B")], spacing_ms=100)
    assert find_violations(document) == [(0, "less than 100 ms before the next segment")]
    assert resolve_violations(document, "adjust") == 1
    assert _times(document) == [(0, 900), (1000, 2000)]
    assert find_violations(document) == []


def test_resolve_violations_pushes_next_start_when_stop_cannot_move(make_document):
    document = make_document([(0, 1200, "A"), (1000, 1500, "B"), (1050, 2000, "C")], spacing_ms=100)
    assert resolve_violations(document, "adjust") == 2
    assert _times(document) == [(0, 900), (1000, 1500), (1600, 2000)]
    assert find_violations(document) == []


def test_resolve_violations_splits_cues_starting_together(make_document):
    document = make_document([(1000, 3000, "A"), (1000, 2500, "B")], spacing_ms=100)
    assert resolve_violations(document, "clip") == 1
    assert _times(document) == [(1000, 1700), (1800, 2500)]
    assert find_violations(document) == []


def test_resolve_violations_is_all_or_nothing(make_document):
    document = make_document([(0, 1200, "A"), (1000, 1500, "B"), (1050, 1080, "C")], spacing_ms=100)
    with pytest.raises(BoundaryViolation):
        resolve_violations(document, "adjust")
    assert _times(document) == [(0, 1200), (1000, 1500), (1050, 1080)]
