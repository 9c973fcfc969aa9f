"""Transcript chunking.

Turns transcript segments into scoring chunks: sentence split with
proportional timing, a single-lookahead merge of short pieces and a
proportional split of pieces longer than the maximum.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import TranscriptChunk, TranscriptContext
from .utils import clamp, is_finite_number

_SENTENCE_RE = re.compile(r"[^。！？.!?]+[。！？.!?]*")
_WS_RE = re.compile(r"\s+")

MIN_SEGMENT_FLOOR_S = 2.0
MIN_SEGMENT_CEIL_S = 120.0
MAX_SEGMENT_CEIL_S = 180.0


@dataclass(frozen=True)
class ChunkingConfig:
    """Chunk duration bounds in seconds."""
    min_seconds: float = 8.0
    max_seconds: float = 30.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ChunkingConfig":
        return normalize_range(d.get("min_seconds"), d.get("max_seconds"))


@dataclass
class _Piece:
    start: float
    end: float
    text: str


def normalize_range(min_seconds: Optional[Any] = None, max_seconds: Optional[Any] = None) -> ChunkingConfig:
    defaults = ChunkingConfig()
    lo = (
        clamp(float(min_seconds), MIN_SEGMENT_FLOOR_S, MIN_SEGMENT_CEIL_S)
        if is_finite_number(min_seconds)
        else defaults.min_seconds
    )
    hi = (
        clamp(float(max_seconds), lo + 1.0, MAX_SEGMENT_CEIL_S)
        if is_finite_number(max_seconds)
        else defaults.max_seconds
    )
    return ChunkingConfig(min_seconds=lo, max_seconds=hi)


def sanitize_text(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def split_words(text: str) -> List[str]:
    return [t for t in (text or "").split() if t]


def split_sentences(text: str) -> List[str]:
    cleaned = sanitize_text(text)
    if not cleaned:
        return []
    matched = [sanitize_text(m) for m in _SENTENCE_RE.findall(cleaned)]
    sentences = [s for s in matched if s]
    return sentences or [cleaned]


def _split_by_max_duration(piece: _Piece, max_seconds: float) -> List[_Piece]:
    duration = max(0.0, piece.end - piece.start)
    if duration <= max_seconds:
        return [piece]

    words = split_words(piece.text)
    if not words:
        return [piece]

    parts = max(1, math.ceil(duration / max_seconds))
    # Word counts round up per part, so with few words a part can still exceed
    # max_seconds (5 words over 59s -> 35.4s + 23.6s). Parts are not re-split.
    per_part = max(1, math.ceil(len(words) / parts))

    out: List[_Piece] = []
    cursor = piece.start
    consumed = 0
    for part in range(parts):
        sl = words[part * per_part:(part + 1) * per_part]
        if not sl:
            continue
        consumed += len(sl)
        if part == parts - 1:
            next_t = piece.end
        else:
            next_t = piece.start + duration * clamp(consumed / len(words), 0.0, 1.0)
        out.append(_Piece(cursor, max(cursor, next_t), " ".join(sl)))
        cursor = max(cursor, next_t)
    return out or [piece]


def _sentence_pieces(context: TranscriptContext) -> List[_Piece]:
    raw = []
    for seg in context.segments:
        text = sanitize_text(seg.text)
        if not text:
            continue
        if not (is_finite_number(seg.start_time) and is_finite_number(seg.end_time)):
            continue
        if seg.end_time <= seg.start_time:
            continue
        raw.append(_Piece(float(seg.start_time), float(seg.end_time), text))
    raw.sort(key=lambda p: p.start)

    pieces: List[_Piece] = []
    for seg in raw:
        sentences = split_sentences(seg.text)
        if len(sentences) <= 1:
            pieces.append(seg)
            continue

        duration = seg.end - seg.start
        total_len = sum(len(s) for s in sentences)
        cursor = seg.start
        for i, sentence in enumerate(sentences):
            ratio = len(sentence) / total_len if total_len > 0 else 1.0 / len(sentences)
            if i == len(sentences) - 1:
                next_t = seg.end
            else:
                next_t = cursor + duration * clamp(ratio, 0.0, 1.0)
            pieces.append(_Piece(cursor, max(cursor, next_t), sentence))
            cursor = max(cursor, next_t)
    return pieces


def segment_transcript(
    context: TranscriptContext,
    min_seconds: Optional[float] = None,
    max_seconds: Optional[float] = None,
) -> List[TranscriptChunk]:
    """Chunk a transcript into sorted, non-overlapping, positive-length pieces."""
    cfg = normalize_range(min_seconds, max_seconds)
    pieces = _sentence_pieces(context)

    # Short pieces absorb their immediate successor, once.
    merged: List[_Piece] = []
    i = 0
    while i < len(pieces):
        current = pieces[i]
        if current.end - current.start < cfg.min_seconds and i + 1 < len(pieces):
            nxt = pieces[i + 1]
            current = _Piece(current.start, nxt.end, sanitize_text(f"{current.text} {nxt.text}"))
            i += 1
        merged.append(current)
        i += 1

    split: List[_Piece] = []
    for piece in merged:
        split.extend(_split_by_max_duration(piece, cfg.max_seconds))

    chunks: List[TranscriptChunk] = []
    for piece in split:
        if piece.end <= piece.start:
            continue
        text = sanitize_text(piece.text)
        chunks.append(TranscriptChunk(
            index=len(chunks),
            start_time=piece.start,
            end_time=piece.end,
            text=text,
            word_count=len(split_words(text)),
        ))
    return chunks
