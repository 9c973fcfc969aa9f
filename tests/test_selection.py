"""Tests for duration-constrained selection."""

from highlightcut.models import RuleScores, ScoredSegment, SemanticScores, TranscriptChunk
from highlightcut.selection import (
    build_selection_reason,
    normalize_target,
    normalize_tolerance,
    select_segments,
)

RULE = RuleScores(0.5, 0.5, 0.5, 0.5)


def _seg(i, start, end, score, hook=None):
    chunk = TranscriptChunk(index=i, start_time=start, end_time=end, text=f"chunk {i}", word_count=2)
    sem = SemanticScores(5, 5, hook, 5) if hook is not None else None
    return ScoredSegment(chunk=chunk, rule_scores=RULE, semantic_scores=sem, combined_score=score)


def _ten(hooks=None):
    scores = [10, 20, 30, 40, 50, 90, 80, 70, 60, 5]
    hooks = hooks or [None] * 10
    return [_seg(i, i * 10.0, i * 10.0 + 10.0, scores[i], hooks[i]) for i in range(10)]


def _picked(plan):
    return [s.chunk.index for s in plan.segments]


def test_normalizers():
    assert normalize_target(-5) == 60.0
    assert normalize_target("30") == 60.0
    assert normalize_target(45) == 45.0
    assert normalize_tolerance(0.9) == 0.5
    assert normalize_tolerance(-1) == 0.0
    assert normalize_tolerance(None) == 0.15


def test_greedy_by_score_within_range():
    plan = select_segments(_ten(), 30, 0.15, include_hook=False)
    assert _picked(plan) == [5, 6, 7]
    assert plan.actual_duration == 30.0
    assert plan.total_segments == 10
    assert plan.coverage_percent == 30.0
    assert 30 * 0.85 <= plan.actual_duration <= 30 * 1.15


def test_short_material_takes_everything():
    segs = _ten()[:3]
    plan = select_segments(segs, 60, 0.15)
    assert _picked(plan) == [0, 1, 2]
    assert plan.actual_duration == 30.0


def test_overlapping_candidates_are_skipped():
    segs = [_seg(0, 0.0, 10.0, 90), _seg(1, 5.0, 15.0, 80), _seg(2, 20.0, 30.0, 70)]
    plan = select_segments(segs, 20, 0.0, include_hook=False)
    assert _picked(plan) == [0, 2]
    for a, b in zip(plan.segments, plan.segments[1:]):
        assert a.chunk.end_time <= b.chunk.start_time


def test_hook_replaces_earliest_selected():
    hooks = [9, 1, 1, 1, 1, 3, 3, 3, 1, 1]
    plan = select_segments(_ten(hooks), 30, 0.15)
    assert _picked(plan) == [0, 6, 7]
    assert plan.actual_duration == 30.0


def test_hook_needs_margin():
    hooks = [4, 1, 1, 1, 1, 3, 3, 3, 1, 1]
    plan = select_segments(_ten(hooks), 30, 0.15)
    assert _picked(plan) == [5, 6, 7]


def test_hook_disabled():
    hooks = [9, 1, 1, 1, 1, 3, 3, 3, 1, 1]
    assert _picked(select_segments(_ten(hooks), 30, 0.15, include_hook=False)) == [5, 6, 7]


def test_deterministic():
    hooks = [2, 7, 1, 1, 1, 3, 3, 3, 9, 1]
    first = select_segments(_ten(hooks), 40, 0.1).to_dict()
    second = select_segments(_ten(hooks), 40, 0.1).to_dict()
    assert first == second


def test_empty_input():
    plan = select_segments([], 60)
    assert plan.segments == []
    assert plan.actual_duration == 0.0
    assert plan.coverage_percent == 0.0


def test_reason_names_strongest_signal():
    seg = _seg(0, 0.0, 10.0, 50, hook=10)
    assert build_selection_reason(seg) == "strong opening hook, high combined score"
    assert build_selection_reason(_seg(1, 0.0, 10.0, 50)).endswith(", high combined score")


def test_selected_segments_carry_scores():
    plan = select_segments(_ten(), 20, 0.0, include_hook=False)
    assert [s.combined_score for s in plan.segments] == [90, 80]
    assert plan.target_duration == 20.0
    assert plan.segments[0].reason
