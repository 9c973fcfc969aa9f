"""Score fusion.

Each segment is fused with the weight row matching the signals it actually
has. Weights of absent signals are zero and drop out of the normalizing
denominator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from .models import RuleScores, ScoredSegment, ScoringWeights, SemanticScores, VisualScores

log = logging.getLogger("highlightcut.scoring")

DEFAULT_SCORING_WEIGHTS = ScoringWeights(rule=0.4, semantic=0.4, visual=0.2)


@dataclass(frozen=True)
class FusionWeights:
    """Weight rows keyed by which optional signals are present."""
    full: ScoringWeights = DEFAULT_SCORING_WEIGHTS
    semantic_only: ScoringWeights = ScoringWeights(rule=0.5, semantic=0.5, visual=0.0)
    visual_only: ScoringWeights = ScoringWeights(rule=0.7, semantic=0.0, visual=0.3)
    rule_only: ScoringWeights = ScoringWeights(rule=1.0, semantic=0.0, visual=0.0)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FusionWeights":
        base = cls()
        return cls(
            full=ScoringWeights.from_dict(d["full"]) if "full" in d else base.full,
            semantic_only=ScoringWeights.from_dict(d["semantic_only"]) if "semantic_only" in d else base.semantic_only,
            visual_only=ScoringWeights.from_dict(d["visual_only"]) if "visual_only" in d else base.visual_only,
            rule_only=ScoringWeights.from_dict(d["rule_only"]) if "rule_only" in d else base.rule_only,
        )

    def row(self, has_semantic: bool, has_visual: bool) -> ScoringWeights:
        if has_semantic and has_visual:
            return self.full
        if has_semantic:
            return self.semantic_only
        if has_visual:
            return self.visual_only
        return self.rule_only


def normalize_rule(rule: RuleScores) -> float:
    v = np.clip(
        np.array([rule.speaking_rate, rule.content_density, rule.engagement_markers, rule.silence_ratio], dtype=np.float64),
        0.0, 1.0,
    )
    return float(np.nan_to_num(v, nan=0.0).mean())


def normalize_semantic(sem: SemanticScores) -> float:
    v = np.clip(
        np.array([sem.importance, sem.emotional_intensity, sem.hook_potential, sem.standalone], dtype=np.float64),
        1.0, 10.0,
    )
    return float(v.mean() / 10.0)


def normalize_visual(vis: VisualScores) -> float:
    if not vis.has_valid_frame:
        return 0.0
    v = np.clip(np.array([vis.frame_quality, vis.visual_interest], dtype=np.float64), 0.0, 1.0)
    return float(np.nan_to_num(v, nan=0.0).mean())


def compute_combined_score(
    rule: RuleScores,
    semantic: Optional[SemanticScores],
    visual: Optional[VisualScores],
    weights: Optional[FusionWeights] = None,
) -> float:
    """Fuse available signals into a score in [0, 100], rounded to 2 places."""
    weights = weights or FusionWeights()
    row = weights.row(semantic is not None, visual is not None)

    terms = [(normalize_rule(rule), row.rule)]
    if semantic is not None:
        terms.append((normalize_semantic(semantic), row.semantic))
    if visual is not None:
        terms.append((normalize_visual(visual), row.visual))

    values = np.array([t[0] for t in terms], dtype=np.float64)
    w = np.clip(np.array([t[1] for t in terms], dtype=np.float64), 0.0, None)
    total = float(w.sum())
    if total <= 0:
        score = float(values[0])
    else:
        score = float((values * w).sum() / total)
    if not np.isfinite(score):
        score = 0.0
    return round(min(1.0, max(0.0, score)) * 100.0, 2)


def assign_ranks(segments: Sequence[ScoredSegment]) -> List[ScoredSegment]:
    """Sort by combined score descending (stable on ties) and number from 1."""
    ordered = sorted(segments, key=lambda s: -s.combined_score)
    return [replace(s, rank=i + 1) for i, s in enumerate(ordered)]


def fuse_segments(
    segments: Sequence[ScoredSegment],
    *,
    semantic: Optional[Mapping[int, SemanticScores]] = None,
    visual: Optional[Mapping[int, VisualScores]] = None,
    weights: Optional[FusionWeights] = None,
) -> List[ScoredSegment]:
    """Attach new signal maps (where given) and recompute scores and ranks.

    A map that is None leaves each segment's existing signal untouched.
    """
    out: List[ScoredSegment] = []
    for seg in segments:
        idx = seg.chunk.index
        sem = semantic.get(idx) if semantic is not None else seg.semantic_scores
        vis = visual.get(idx, seg.visual_scores) if visual is not None else seg.visual_scores
        score = compute_combined_score(seg.rule_scores, sem, vis, weights)
        out.append(replace(seg, semantic_scores=sem, visual_scores=vis, combined_score=score))
    ranked = assign_ranks(out)
    log.debug(f"[fusion] Ranked {len(ranked)} segments")
    return ranked
