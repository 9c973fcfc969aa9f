"""Tests for transcript chunking."""

import pytest

from highlightcut.analysis_chunks import normalize_range, segment_transcript, split_sentences
from highlightcut.models import TranscriptContext, TranscriptSegment


def _ctx(*segments):
    return TranscriptContext(
        segments=[TranscriptSegment(s, e, t) for s, e, t in segments],
        source="captions",
    )


class TestNormalizeRange:
    def test_defaults(self):
        cfg = normalize_range()
        assert (cfg.min_seconds, cfg.max_seconds) == (8.0, 30.0)

    def test_clamped(self):
        cfg = normalize_range(1, 500)
        assert (cfg.min_seconds, cfg.max_seconds) == (2.0, 180.0)

    def test_max_at_least_min_plus_one(self):
        cfg = normalize_range(50, 20)
        assert (cfg.min_seconds, cfg.max_seconds) == (50.0, 51.0)

    def test_non_numeric_falls_back(self):
        cfg = normalize_range("x", float("nan"))
        assert (cfg.min_seconds, cfg.max_seconds) == (8.0, 30.0)


def test_split_sentences_keeps_terminators():
    assert split_sentences("Hello there.  How are you?") == ["Hello there.", "How are you?"]
    assert split_sentences("你好。再见！") == ["你好。", "再见！"]
    assert split_sentences("   ") == []


def test_short_piece_absorbs_next():
    chunks = segment_transcript(_ctx(
        (0.0, 5.0, "Short one."),
        (5.0, 20.0, "This is a longer sentence"),
        (20.0, 25.0, "End."),
    ))
    assert [(c.start_time, c.end_time) for c in chunks] == [(0.0, 20.0), (20.0, 25.0)]
    assert chunks[0].text == "Short one. This is a longer sentence"
    assert chunks[0].word_count == 7
    assert [c.index for c in chunks] == [0, 1]


def test_long_piece_is_split_by_words():
    text = " ".join(f"w{i}" for i in range(12))
    chunks = segment_transcript(_ctx((0.0, 60.0, text)))
    assert [(c.start_time, c.end_time) for c in chunks] == [(0.0, 30.0), (30.0, 60.0)]
    assert chunks[0].word_count == 6


def test_sentence_timing_is_proportional():
    chunks = segment_transcript(_ctx((0.0, 10.0, "aaaa. bbbbbbbb.")), min_seconds=2, max_seconds=30)
    assert len(chunks) == 2
    assert chunks[0].end_time == pytest.approx(10.0 * 5 / 14)
    assert chunks[1].end_time == 10.0


def test_invalid_segments_are_skipped():
    chunks = segment_transcript(_ctx(
        (5.0, 5.0, "zero length"),
        (8.0, 4.0, "backwards"),
        (10.0, 30.0, "   "),
        (30.0, 45.0, "kept"),
    ))
    assert [(c.start_time, c.end_time, c.text) for c in chunks] == [(30.0, 45.0, "kept")]


def test_chunks_sorted_and_non_overlapping():
    chunks = segment_transcript(_ctx(
        (20.0, 35.0, "Second part. With two sentences."),
        (0.0, 20.0, "First part here."),
        (35.0, 80.0, " ".join(["word"] * 40)),
    ))
    assert chunks
    for a, b in zip(chunks, chunks[1:]):
        assert a.end_time <= b.start_time + 1e-9
    assert all(c.end_time > c.start_time for c in chunks)


def test_few_words_split_keeps_rounded_parts():
    chunks = segment_transcript(_ctx((0.0, 59.0, "a b c d e")), 8, 30)
    assert [c.text for c in chunks] == ["a b c", "d e"]
    assert chunks[0].end_time == pytest.approx(35.4)
    assert chunks[1].start_time == pytest.approx(35.4)
    assert chunks[1].end_time == pytest.approx(59.0)
