"""LLM semantic scoring of transcript chunks.

Chunks are grouped into blocks bounded by a speech-seconds budget and a
wall-clock span budget; each block is one chat call asking for four integer
axes per chunk. Blocks run sequentially. A failed block is recorded in the
diagnostics and skipped.
"""
from __future__ import annotations

import logging
import math
import time as _time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..cancellation import CancellationToken, check_cancel
from ..errors import ExecutionCancelled
from ..models import LLMScoringDiagnostics, SemanticScores, TranscriptChunk
from ..utils import fmt_clock, is_finite_number
from .lenient_json import decode_lenient
from .llm_client import ChatProvider, text_message

log = logging.getLogger("highlightcut.ai.semantic")

SEMANTIC_AXES = ("importance", "emotionalIntensity", "hookPotential", "standalone")
MAX_FAILED_SAMPLES = 3

SYSTEM_PROMPT = "You are a short-form video editing assistant. Output JSON only, no explanations."


@dataclass(frozen=True)
class SemanticConfig:
    """Block budgets and prompt settings for semantic scoring."""
    block_speech_seconds: float = 180.0
    block_span_seconds: float = 300.0
    temperature: float = 0.2
    max_chunk_chars: int = 320

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SemanticConfig":
        return cls(
            block_speech_seconds=float(d.get("block_speech_seconds", 180.0)),
            block_span_seconds=float(d.get("block_span_seconds", 300.0)),
            temperature=float(d.get("temperature", 0.2)),
            max_chunk_chars=int(d.get("max_chunk_chars", 320)),
        )


def build_blocks(chunks: Sequence[TranscriptChunk], cfg: SemanticConfig) -> List[List[TranscriptChunk]]:
    """Greedy forward grouping; a block closes when either budget would be exceeded."""
    ordered = sorted(chunks, key=lambda c: c.start_time)
    blocks: List[List[TranscriptChunk]] = []
    current: List[TranscriptChunk] = []
    span_start = 0.0
    speech = 0.0

    for chunk in ordered:
        if not current:
            current = [chunk]
            span_start = chunk.start_time
            speech = chunk.duration
            continue
        over_span = chunk.end_time - span_start > cfg.block_span_seconds
        over_speech = speech + chunk.duration > cfg.block_speech_seconds
        if over_span or over_speech:
            blocks.append(current)
            current = [chunk]
            span_start = chunk.start_time
            speech = chunk.duration
            continue
        current.append(chunk)
        speech += chunk.duration

    if current:
        blocks.append(current)
    return blocks


def build_semantic_prompt(chunks: Sequence[TranscriptChunk], max_chars: int = 320) -> str:
    lines = []
    for c in chunks:
        text = c.text if len(c.text) <= max_chars else f"{c.text[:max_chars]}..."
        lines.append(f"[{c.index}] ({fmt_clock(c.start_time)}-{fmt_clock(c.end_time)}) {text}")
    return "\n".join([
        "You are a professional short-video editor. Below are numbered transcript",
        "excerpts from a long video. Score every numbered excerpt with integers 1-10:",
        "- importance: information content and significance",
        "- emotionalIntensity: emotional intensity of the delivery",
        "- hookPotential: how well it would open a short video",
        "- standalone: whether it is understandable without surrounding context",
        "",
        *lines,
        "",
        "Return only a JSON array in this format:",
        '[{"index":1,"importance":8,"emotionalIntensity":6,"hookPotential":9,"standalone":7}]',
    ])


def _axis(value: Any) -> Optional[int]:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return int(min(10, max(1, round(n))))


def parse_semantic_scores(content: Optional[str], allowed: Optional[set] = None) -> Optional[Dict[int, SemanticScores]]:
    """Parse a block response into ``index -> SemanticScores``.

    Accepts a bare array or an object with a ``scores`` array. Items with a
    non-integer index, an index outside ``allowed`` or a non-finite axis are
    dropped. Returns None when nothing usable remains.
    """
    decoded = decode_lenient(content)
    if not decoded.ok:
        return None
    parsed = decoded.value
    if isinstance(parsed, dict) and isinstance(parsed.get("scores"), list):
        items = parsed["scores"]
    elif isinstance(parsed, list):
        items = parsed
    else:
        return None

    out: Dict[int, SemanticScores] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        raw_index = item.get("index")
        if not is_finite_number(raw_index) or float(raw_index) != int(raw_index):
            continue
        index = int(raw_index)
        if allowed is not None and index not in allowed:
            continue
        axes = [_axis(item.get(k)) for k in SEMANTIC_AXES]
        if any(a is None for a in axes):
            continue
        out[index] = SemanticScores(
            importance=axes[0],
            emotional_intensity=axes[1],
            hook_potential=axes[2],
            standalone=axes[3],
        )
    return out or None


def _record_failure(diag: LLMScoringDiagnostics, sample: str) -> None:
    diag.failed_blocks += 1
    if len(diag.failed_samples) < MAX_FAILED_SAMPLES:
        diag.failed_samples.append(sample[:200])


def score_with_llm(
    chunks: Sequence[TranscriptChunk],
    provider: ChatProvider,
    *,
    cfg: Optional[SemanticConfig] = None,
    cancel: Optional[CancellationToken] = None,
) -> tuple[Dict[int, SemanticScores], LLMScoringDiagnostics]:
    """Score chunks block by block.

    Returns a sparse ``chunk index -> SemanticScores`` map and diagnostics.
    Absent entries mean no semantic opinion for that chunk.
    """
    cfg = cfg or SemanticConfig()
    result: Dict[int, SemanticScores] = {}
    diag = LLMScoringDiagnostics()
    check_cancel(cancel)
    if not chunks:
        return result, diag

    blocks = build_blocks(chunks, cfg)
    diag.total_blocks = len(blocks)
    log.info(f"[semantic] Scoring {len(chunks)} chunks in {len(blocks)} blocks")

    for bi, block in enumerate(blocks):
        check_cancel(cancel)
        prompt = build_semantic_prompt(block, cfg.max_chunk_chars)
        allowed = {c.index for c in block}
        t0 = _time.time()
        try:
            response = provider.chat(
                [text_message("system", SYSTEM_PROMPT), text_message("user", prompt)],
                tools=[],
                temperature=cfg.temperature,
            )
        except ExecutionCancelled:
            raise
        except Exception as e:
            check_cancel(cancel)
            log.warning(f"[semantic] Block {bi} failed: {e}")
            _record_failure(diag, f"block {bi}: {e}")
            continue
        check_cancel(cancel)

        content = response.content if isinstance(response.content, str) else ""
        log.debug(f"[semantic] Block {bi} responded in {_time.time() - t0:.1f}s: {content[:300]!r}")
        parsed = parse_semantic_scores(content, allowed)
        if not parsed:
            reason = "empty response" if not content.strip() else f"unparsable: {content[:120]}"
            log.warning(f"[semantic] Block {bi} {reason}")
            _record_failure(diag, f"block {bi}: {reason}")
            continue
        result.update(parsed)

    if diag.failed_blocks:
        log.warning(f"[semantic] {diag.failed_blocks}/{diag.total_blocks} blocks failed")
    log.info(f"[semantic] Got scores for {len(result)}/{len(chunks)} chunks")
    return result, diag
