import pytest

from voxscribe.models.transcription import TimingSource
from voxscribe.services.segments import (
    SegmentDraft,
    batched,
    format_timestamp_srt,
    join_units,
    render_srt,
    sanitize_native_segments,
    split_sentences,
    synthesize_segments,
)


def test_split_sentences_keeps_punctuation_attached():
    text = "Hello there.  How are you?\nFine!   Thanks"
    assert split_sentences(text) == ["Hello there.", "How are you?", "Fine!", "Thanks"]


def test_split_sentences_empty_and_whitespace():
    assert split_sentences("") == []
    assert split_sentences(None) == []
    assert split_sentences("   \n ") == []


def test_split_then_join_normalizes_whitespace():
    text = "One.   Two   words!\tThree?"
    assert join_units(split_sentences(text)) == "One. Two words! Three?"


def test_synthesize_segments_windows_are_back_to_back():
    drafts = synthesize_segments(["a.", "b.", "c."], 4000)
    assert [(d.start_ms, d.end_ms) for d in drafts] == [(0, 4000), (4000, 8000), (8000, 12000)]
    assert all(d.timing_source is TimingSource.NOMINAL for d in drafts)


def test_synthesize_segments_rejects_non_positive_window():
    with pytest.raises(ValueError):
        synthesize_segments(["a."], 0)


def test_sanitize_native_segments_enforces_ordering():
    raw = [
        SegmentDraft("first", 100, 900, confidence=1.4),
        SegmentDraft("overlaps", 500, 1200, confidence=-0.2),
        SegmentDraft("   ", 1300, 1400),
        SegmentDraft("zero length", 1500, 1500),
    ]
    cleaned = sanitize_native_segments(raw)

    assert [d.text for d in cleaned] == ["first", "overlaps", "zero length"]
    assert [(d.start_ms, d.end_ms) for d in cleaned] == [(100, 900), (900, 1200), (1500, 1501)]
    assert cleaned[0].confidence == 1.0
    assert cleaned[1].confidence == 0.0
    assert all(d.timing_source is TimingSource.PROVIDER for d in cleaned)
    for previous, current in zip(cleaned, cleaned[1:]):
        assert previous.end_ms <= current.start_ms


def test_batched_keeps_order_and_remainder():
    assert list(batched(list(range(12)), 5)) == [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9], [10, 11]]
    assert list(batched([], 5)) == []


def test_format_timestamp_srt():
    assert format_timestamp_srt(0) == "00:00:00,000"
    assert format_timestamp_srt(3_723_004) == "01:02:03,004"


def test_render_srt():
    srt = render_srt(synthesize_segments(["Hello.", "World."], 4000))
    assert srt == (
        "1\n00:00:00,000 --> 00:00:04,000\nHello.\n\n"
        "2\n00:00:04,000 --> 00:00:08,000\nWorld.\n"
    )
