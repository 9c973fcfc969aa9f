"""VLM visual scoring of the top-ranked candidates.

Each candidate's thumbnail goes to the model in a bounded thread pool.
Candidates without a thumbnail or with an unusable response get
``hasValidFrame=False`` and zero sub-scores; none are dropped.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..cancellation import CancellationToken, check_cancel
from ..concurrency import map_with_concurrency
from ..errors import ExecutionCancelled
from ..models import ScoredSegment, VisualScores
from ..utils import clamp
from .lenient_json import decode_lenient
from .llm_client import ChatProvider, image_message, text_message

log = logging.getLogger("highlightcut.ai.visual")

SYSTEM_PROMPT = "You are a video frame assessment assistant. Output JSON only."
VISUAL_PROMPT = "\n".join([
    "You are an expert in judging video frame quality.",
    "Rate how visually compelling this frame is as part of a short video clip.",
    "Criteria:",
    "- frameQuality: sharpness, composition, lighting (0.0-1.0)",
    "- visualInterest: expressions, action, scene changes (0.0-1.0)",
    'Return only JSON: {"frameQuality": 0.8, "visualInterest": 0.7}',
])

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 8


@dataclass(frozen=True)
class VisualConfig:
    top_n: int = 15
    concurrency: int = 4
    temperature: float = 0.2

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VisualConfig":
        return cls(
            top_n=max(1, int(d.get("top_n", 15))),
            concurrency=int(clamp(int(d.get("concurrency", 4)), MIN_CONCURRENCY, MAX_CONCURRENCY)),
            temperature=float(d.get("temperature", 0.2)),
        )


def parse_visual_scores(content: Optional[str]) -> Optional[VisualScores]:
    decoded = decode_lenient(content)
    if not decoded.ok or not isinstance(decoded.value, dict):
        return None
    try:
        fq = float(decoded.value.get("frameQuality"))
        vi = float(decoded.value.get("visualInterest"))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(fq) and math.isfinite(vi)):
        return None
    return VisualScores(
        frame_quality=clamp(fq, 0.0, 1.0),
        visual_interest=clamp(vi, 0.0, 1.0),
        has_valid_frame=True,
    )


def score_with_vision(
    candidates: Sequence[ScoredSegment],
    max_candidates: int,
    provider: ChatProvider,
    *,
    concurrency: int = 4,
    temperature: float = 0.2,
    cancel: Optional[CancellationToken] = None,
) -> Dict[int, VisualScores]:
    """Score the top ``max_candidates`` by ``combined_score``.

    Returns ``chunk index -> VisualScores`` for every scored candidate.
    """
    check_cancel(cancel)
    if not candidates or max_candidates <= 0:
        return {}

    targets: List[ScoredSegment] = sorted(
        candidates, key=lambda s: s.combined_score, reverse=True
    )[:max_candidates]
    limit = int(clamp(int(concurrency), MIN_CONCURRENCY, MAX_CONCURRENCY))
    log.info(f"[visual] Scoring {len(targets)} candidates (concurrency={limit})")

    def _score_one(seg: ScoredSegment, _i: int) -> VisualScores:
        check_cancel(cancel)
        if not seg.thumbnail:
            return VisualScores.invalid()
        try:
            response = provider.chat(
                [text_message("system", SYSTEM_PROMPT), image_message(VISUAL_PROMPT, seg.thumbnail)],
                tools=[],
                temperature=temperature,
            )
        except ExecutionCancelled:
            raise
        except Exception as e:
            check_cancel(cancel)
            log.warning(f"[visual] Chunk {seg.chunk.index} failed: {e}")
            return VisualScores.invalid()
        check_cancel(cancel)
        parsed = parse_visual_scores(response.content)
        if parsed is None:
            log.warning(f"[visual] Chunk {seg.chunk.index} unparsable response")
            return VisualScores.invalid()
        return parsed

    scores = map_with_concurrency(targets, limit, _score_one)
    valid = sum(1 for s in scores if s.has_valid_frame)
    log.info(f"[visual] {valid}/{len(scores)} candidates have a valid frame")
    return {seg.chunk.index: vs for seg, vs in zip(targets, scores)}
