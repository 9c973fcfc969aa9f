"""Duration-constrained segment selection.

Greedy by combined score, then a relaxed backfill when still short of the
minimum, then an optional hook promotion that swaps the earliest selected
segment for the strongest opener.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .models import HighlightPlan, ScoredSegment, SelectedSegment
from .utils import clamp, is_finite_number

log = logging.getLogger("highlightcut.selection")

DEFAULT_TARGET_SECONDS = 60.0
DEFAULT_TOLERANCE = 0.15
MAX_TOLERANCE = 0.5
HOOK_MARGIN = 2


@dataclass(frozen=True)
class SelectionConfig:
    target_seconds: float = DEFAULT_TARGET_SECONDS
    tolerance: float = DEFAULT_TOLERANCE
    include_hook: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SelectionConfig":
        return cls(
            target_seconds=normalize_target(d.get("target_seconds")),
            tolerance=normalize_tolerance(d.get("tolerance")),
            include_hook=bool(d.get("include_hook", True)),
        )


def normalize_target(value: Any) -> float:
    if is_finite_number(value) and float(value) > 0:
        return float(value)
    return DEFAULT_TARGET_SECONDS


def normalize_tolerance(value: Any) -> float:
    tol = float(value) if is_finite_number(value) else DEFAULT_TOLERANCE
    return clamp(tol, 0.0, MAX_TOLERANCE)


def _overlaps(a: ScoredSegment, b: ScoredSegment) -> bool:
    return a.chunk.start_time < b.chunk.end_time and b.chunk.start_time < a.chunk.end_time


def _contains(selected: Sequence[ScoredSegment], seg: ScoredSegment) -> bool:
    return any(s is seg for s in selected)


def find_best_hook(ranked: Sequence[ScoredSegment]) -> Optional[ScoredSegment]:
    """Highest hook potential among segments with semantic scores; first wins ties."""
    best: Optional[ScoredSegment] = None
    for seg in ranked:
        if seg.semantic_scores is None:
            continue
        if best is None or seg.semantic_scores.hook_potential > best.semantic_scores.hook_potential:
            best = seg
    return best


def build_selection_reason(seg: ScoredSegment) -> str:
    reasons = [
        ("high content density", seg.rule_scores.content_density),
        ("strong engagement signals", seg.rule_scores.engagement_markers),
    ]
    if seg.semantic_scores is not None:
        reasons.append(("high importance", seg.semantic_scores.importance / 10.0))
        reasons.append(("strong opening hook", seg.semantic_scores.hook_potential / 10.0))
    if seg.visual_scores is not None:
        reasons.append(("visually compelling", seg.visual_scores.visual_interest))
    label, _ = max(reasons, key=lambda r: r[1])
    return f"{label}, high combined score"


def select_segments(
    segments: Sequence[ScoredSegment],
    target_duration: Any = DEFAULT_TARGET_SECONDS,
    tolerance: Any = DEFAULT_TOLERANCE,
    *,
    include_hook: bool = True,
) -> HighlightPlan:
    target = normalize_target(target_duration)
    tol = normalize_tolerance(tolerance)
    min_d = target * (1.0 - tol)
    max_d = target * (1.0 + tol)

    ranked = sorted(segments, key=lambda s: -s.combined_score)
    selected: List[ScoredSegment] = []
    current = 0.0

    for cand in ranked:
        d = cand.duration
        if d <= 0:
            continue
        if any(_overlaps(s, cand) for s in selected):
            continue
        if current + d > max_d and current >= min_d:
            continue
        selected.append(cand)
        current += d
        if min_d <= current <= max_d:
            break

    if current < min_d:
        for cand in ranked:
            if _contains(selected, cand):
                continue
            d = cand.duration
            if d <= 0:
                continue
            if any(_overlaps(s, cand) for s in selected):
                continue
            if current + d > max_d and current > 0:
                continue
            selected.append(cand)
            current += d
            if current >= min_d:
                break

    if include_hook and selected:
        hook = find_best_hook(ranked)
        if hook is not None and not _contains(selected, hook):
            first = min(selected, key=lambda s: s.chunk.start_time)
            hook_score = hook.semantic_scores.hook_potential
            first_score = first.semantic_scores.hook_potential if first.semantic_scores else 0
            others = [s for s in selected if s is not first]
            next_d = current - first.duration + hook.duration
            if (
                not any(_overlaps(s, hook) for s in others)
                and hook_score >= first_score + HOOK_MARGIN
                and next_d <= max_d
            ):
                pos = next(i for i, s in enumerate(selected) if s is first)
                selected[pos] = hook
                current = next_d
                log.info(f"[select] Promoted chunk {hook.chunk.index} as hook (hook={hook_score})")

    ordered = sorted(selected, key=lambda s: s.chunk.start_time)
    actual = sum(s.duration for s in ordered)
    if segments:
        span = max(s.chunk.end_time for s in segments) - min(s.chunk.start_time for s in segments)
    else:
        span = 0.0
    span = max(0.001, span)

    plan = HighlightPlan(
        target_duration=target,
        actual_duration=round(actual, 2),
        segments=[
            SelectedSegment(
                chunk=s.chunk,
                combined_score=s.combined_score,
                reason=build_selection_reason(s),
                thumbnail=s.thumbnail,
            )
            for s in ordered
        ],
        total_segments=len(segments),
        coverage_percent=round(actual / span * 100.0, 2),
    )
    log.info(
        f"[select] {len(ordered)}/{len(segments)} segments, "
        f"{plan.actual_duration:.2f}s (target {target:.1f}s, range {min_d:.1f}-{max_d:.1f}s)"
    )
    return plan
