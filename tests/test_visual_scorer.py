"""Tests for VLM visual scoring."""

import json

from highlightcut.ai.visual_scorer import VisualConfig, parse_visual_scores, score_with_vision
from highlightcut.models import RuleScores, ScoredSegment, TranscriptChunk

from conftest import FakeProvider

RULE = RuleScores(0.5, 0.5, 0.5, 0.5)


def _seg(i, score, thumbnail="data:image/jpeg;base64,AA"):
    chunk = TranscriptChunk(index=i, start_time=i * 10.0, end_time=i * 10.0 + 10.0, text="t", word_count=1)
    return ScoredSegment(chunk=chunk, rule_scores=RULE, combined_score=score, thumbnail=thumbnail)


def test_config_clamps_concurrency():
    assert VisualConfig.from_dict({"concurrency": 50}).concurrency == 8
    assert VisualConfig.from_dict({"concurrency": 0}).concurrency == 1


def test_parse_visual_scores():
    vs = parse_visual_scores('Result: {"frameQuality": 1.4, "visualInterest": 0.25}')
    assert vs.frame_quality == 1.0
    assert vs.visual_interest == 0.25
    assert vs.has_valid_frame is True
    assert parse_visual_scores('{"frameQuality": "bad"}') is None
    assert parse_visual_scores("[0.5, 0.5]") is None


def test_only_top_candidates_are_scored():
    provider = FakeProvider([json.dumps({"frameQuality": 0.8, "visualInterest": 0.6})])
    segs = [_seg(0, 10.0), _seg(1, 90.0), _seg(2, 50.0)]
    out = score_with_vision(segs, 2, provider, concurrency=2)
    assert sorted(out) == [1, 2]
    assert all(v.has_valid_frame for v in out.values())
    assert len(provider.calls) == 2


def test_missing_thumbnail_and_errors_mark_invalid():
    def respond(messages):
        url = messages[1]["content"][1]["image_url"]["url"]
        if url.endswith("BAD"):
            raise RuntimeError("vlm down")
        return "not json"

    segs = [_seg(0, 90.0, thumbnail=None), _seg(1, 80.0, "data:image/jpeg;base64,BAD"), _seg(2, 70.0)]
    provider = FakeProvider(respond)
    out = score_with_vision(segs, 10, provider, concurrency=3)
    assert sorted(out) == [0, 1, 2]
    assert not any(v.has_valid_frame for v in out.values())
    assert all(v.frame_quality == 0.0 and v.visual_interest == 0.0 for v in out.values())
    assert len(provider.calls) == 2


def test_empty_inputs():
    assert score_with_vision([], 5, FakeProvider()) == {}
    assert score_with_vision([_seg(0, 1.0)], 0, FakeProvider()) == {}
