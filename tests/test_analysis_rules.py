"""Tests for rule features."""

import pytest

from highlightcut.analysis_rules import (
    compute_rule_scores,
    content_density,
    engagement_markers,
    speaking_rate_score,
)
from highlightcut.models import TranscriptChunk, TranscriptWord


def _chunk(text, start=0.0, end=10.0, word_count=0):
    return TranscriptChunk(index=0, start_time=start, end_time=end, text=text, word_count=word_count)


def test_speaking_rate_bounds():
    assert speaking_rate_score(0.0) == 0.0
    assert speaking_rate_score(0.8) == 0.0
    assert speaking_rate_score(2.0) == pytest.approx(0.5)
    assert speaking_rate_score(10.0) == 1.0


def test_content_density_ignores_fillers():
    assert content_density(["um", "the", "plan", "Like,"]) == pytest.approx(0.5)
    assert content_density([]) == 0.0
    assert content_density(["然后", "重点"]) == pytest.approx(0.5)


def test_engagement_markers_counts_punctuation_and_keywords():
    assert engagement_markers("nothing here") == 0.0
    assert engagement_markers("This is important!") == pytest.approx(0.5)
    assert engagement_markers("Amazing! Key secret? Never!") == 1.0
    assert engagement_markers("这很重要！") == pytest.approx(0.5)


def test_rule_scores_in_unit_range():
    chunk = _chunk("um you know this is the key mistake!", word_count=8)
    words = [TranscriptWord(0.0, 4.0, "a"), TranscriptWord(6.0, 8.0, "b"), TranscriptWord(20.0, 21.0, "far")]
    scores = compute_rule_scores(chunk, words)
    for v in (scores.speaking_rate, scores.content_density, scores.engagement_markers, scores.silence_ratio):
        assert 0.0 <= v <= 1.0
    assert scores.silence_ratio == pytest.approx(0.6)


def test_word_count_falls_back_to_tokens():
    chunk = _chunk(" ".join(["word"] * 20), word_count=0)
    assert compute_rule_scores(chunk, []).speaking_rate == pytest.approx((2.0 - 0.8) / 2.4)


def test_no_words_means_zero_voiced_ratio():
    assert compute_rule_scores(_chunk("hello"), []).silence_ratio == 0.0
