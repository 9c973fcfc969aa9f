"""Tests for score fusion."""

import pytest

from highlightcut.models import RuleScores, ScoredSegment, SemanticScores, TranscriptChunk, VisualScores
from highlightcut.scoring import FusionWeights, compute_combined_score, fuse_segments

RULE = RuleScores(speaking_rate=0.85, content_density=0.85, engagement_markers=0.85, silence_ratio=0.85)
SEM = SemanticScores(importance=8, emotional_intensity=8, hook_potential=8, standalone=8)


def _seg(i, rule=RULE):
    chunk = TranscriptChunk(index=i, start_time=i * 10.0, end_time=i * 10.0 + 10.0, text="t", word_count=1)
    return ScoredSegment(chunk=chunk, rule_scores=rule, combined_score=compute_combined_score(rule, None, None))


class TestCombinedScore:
    def test_rule_only(self):
        assert compute_combined_score(RULE, None, None) == pytest.approx(85.0)

    def test_rule_and_semantic(self):
        assert compute_combined_score(RULE, SEM, None) == pytest.approx(82.5)

    def test_all_signals(self):
        vis = VisualScores(frame_quality=0.9, visual_interest=0.7, has_valid_frame=True)
        assert compute_combined_score(RULE, SEM, vis) == pytest.approx(82.0)

    def test_full_rule_half_visual_without_semantic(self):
        rule = RuleScores(1.0, 1.0, 1.0, 1.0)
        vis = VisualScores(frame_quality=1.0, visual_interest=0.0, has_valid_frame=True)
        assert compute_combined_score(rule, None, vis) == 85.0

    def test_invalid_frame_counts_as_zero(self):
        assert compute_combined_score(RULE, None, VisualScores.invalid()) == pytest.approx(59.5)

    def test_bounds(self):
        low = RuleScores(0.0, 0.0, 0.0, 0.0)
        high = RuleScores(1.0, 1.0, 1.0, 1.0)
        assert compute_combined_score(low, SemanticScores(1, 1, 1, 1), None) == pytest.approx(5.0)
        assert compute_combined_score(high, SemanticScores(10, 10, 10, 10), None) == 100.0
        assert compute_combined_score(RuleScores(2.0, -1.0, float("nan"), 0.5), None, None) == pytest.approx(37.5)

    def test_custom_weight_rows(self):
        weights = FusionWeights.from_dict({"semantic_only": {"rule": 0.0, "semantic": 1.0, "visual": 0.0}})
        assert compute_combined_score(RULE, SEM, None, weights) == pytest.approx(80.0)
        assert weights.rule_only.rule == 1.0


def test_fuse_attaches_semantic_and_ranks():
    segs = [_seg(0), _seg(1), _seg(2, RuleScores(0.1, 0.1, 0.1, 0.1))]
    fused = fuse_segments(segs, semantic={1: SemanticScores(10, 10, 10, 10)})
    assert [s.chunk.index for s in fused] == [1, 0, 2]
    assert [s.rank for s in fused] == [1, 2, 3]
    assert fused[0].semantic_scores is not None
    assert fused[1].semantic_scores is None


def test_fuse_ties_keep_input_order():
    fused = fuse_segments([_seg(3), _seg(1), _seg(2)])
    assert [s.chunk.index for s in fused] == [3, 1, 2]


def test_fuse_visual_map_keeps_unscored_segments():
    vis = VisualScores(frame_quality=1.0, visual_interest=1.0, has_valid_frame=True)
    segs = fuse_segments([_seg(0), _seg(1)], semantic={0: SEM, 1: SEM})
    fused = fuse_segments(segs, visual={1: vis})
    by_index = {s.chunk.index: s for s in fused}
    assert by_index[1].visual_scores == vis
    assert by_index[0].visual_scores is None
    assert by_index[0].semantic_scores == SEM
