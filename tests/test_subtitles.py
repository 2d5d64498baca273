import pytest

from subtiming.services.subtitles import (
    Document,
    PlaybackLoop,
    Segment,
    WordTiming,
    delete_document,
    load_document,
    save_document,
)


def test_segments_are_kept_sorted_with_stable_ties():
    document = Document(
        format="srt",
        segments=[
            Segment(2000, 3000, "c"),
            Segment(0, 1000, "a"),
            Segment(2000, 2500, "d"),
        ],
    )
    assert [seg.text for seg in document] == ["a", "c", "d"]

    index = document.insert(Segment(2000, 2200, "e"))
    assert index == 3
    assert [seg.text for seg in document] == ["a", "c", "d", "e"]


def test_lookup_helpers(make_document):
    document = make_document([(0, 1000, "a"), (1500, 2000, "b"), (3000, 4000, "c")])
    assert document.index_at(1600) == 1
    assert document.index_at(1200) is None
    assert [seg.text for seg in document.between(900, 3100)] == ["a", "b", "c"]
    assert [seg.text for seg in document.range(1, 2)] == ["b", "c"]
    assert document.previous(0) is None
    assert document.next(2) is None
    with pytest.raises(IndexError):
        document.segment(3)
    with pytest.raises(IndexError):
        document.resolve_range(2, 1)


def test_playback_loop_follows_edits(make_document):
    document = make_document([(0, 1000, "a"), (1500, 2000, "b")])
    target = document.segments[1]
    loop = PlaybackLoop(document, target, lead_ms=200, lag_ms=100)
    assert (loop.start_ms, loop.stop_ms) == (1300, 2100)

    target.start_ms = 1700
    document.notify_edit(target)
    assert loop.start_ms == 1500

    loop.close()
    target.stop_ms = 2500
    document.notify_edit(target)
    assert loop.stop_ms == 2100


def test_save_and_load_round_trip(documents_dir):
    segment = Segment(
        0,
        1000,
        "hello",
        comment="before",
        after_comments=["after"],
        words=[WordTiming("hello", 0, 900, 0.8)],
        extra={"Style": "Main"},
    )
    document = Document(format="ass", segments=[segment], header="[Events]", spacing_ms=50)
    save_document(document)
    assert (documents_dir / f"{document.document_id}.json").exists()

    loaded = load_document(document.document_id)
    assert loaded.to_dict() == document.to_dict()
    assert loaded.segments[0].words[0].confidence == 0.8

    assert delete_document(document.document_id)
    assert load_document(document.document_id) is None
    assert not delete_document(document.document_id)
