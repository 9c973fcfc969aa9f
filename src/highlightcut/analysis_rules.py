"""Deterministic rule features for transcript chunks."""
from __future__ import annotations

import re
from typing import List, Sequence

from .analysis_chunks import split_words
from .models import RuleScores, TranscriptChunk, TranscriptWord
from .utils import clamp

EN_FILLER_WORDS = frozenset({
    "um", "uh", "like", "you", "know", "basically",
    "actually", "literally", "right", "so", "well",
})
ZH_FILLER_WORDS = ("嗯", "啊", "然后", "就是", "那个", "这个", "对吧", "反正", "就是说", "怎么说")

EN_ENGAGEMENT_WORDS = (
    "amazing", "important", "key", "secret", "mistake",
    "problem", "solution", "must", "never", "always",
)
ZH_ENGAGEMENT_WORDS = ("重要", "关键", "秘密", "错误", "必须", "一定", "绝对", "太棒了", "注意", "千万")

_PUNCT_RE = re.compile(r"[!?！？]")
_NON_ALPHA_RE = re.compile(r"[^a-z]")

# Words per second mapped onto [0, 1].
SPEAKING_RATE_LOW = 0.8
SPEAKING_RATE_HIGH = 3.2


def speaking_rate_score(words_per_second: float) -> float:
    return clamp((words_per_second - SPEAKING_RATE_LOW) / (SPEAKING_RATE_HIGH - SPEAKING_RATE_LOW), 0.0, 1.0)


def _is_filler(token: str) -> bool:
    normalized = _NON_ALPHA_RE.sub("", token.lower())
    if normalized and normalized in EN_FILLER_WORDS:
        return True
    return any(f in token for f in ZH_FILLER_WORDS)


def content_density(tokens: Sequence[str]) -> float:
    if not tokens:
        return 0.0
    kept = sum(1 for t in tokens if not _is_filler(t))
    return clamp(kept / len(tokens), 0.0, 1.0)


def engagement_markers(text: str) -> float:
    lower = text.lower()
    hits = len(_PUNCT_RE.findall(text))
    hits += sum(1 for kw in EN_ENGAGEMENT_WORDS if kw in lower)
    hits += sum(1 for kw in ZH_ENGAGEMENT_WORDS if kw in text)
    return clamp(hits / 4.0, 0.0, 1.0)


def voiced_ratio(chunk: TranscriptChunk, words: Sequence[TranscriptWord]) -> float:
    """Fraction of the chunk covered by word intervals (0 with no words)."""
    if not words:
        return 0.0
    duration = max(0.001, chunk.end_time - chunk.start_time)
    voiced = 0.0
    for w in words:
        lo = max(chunk.start_time, w.start_time)
        hi = min(chunk.end_time, w.end_time)
        if hi > lo:
            voiced += hi - lo
    return clamp(voiced / duration, 0.0, 1.0)


def compute_rule_scores(chunk: TranscriptChunk, words: Sequence[TranscriptWord]) -> RuleScores:
    in_chunk: List[TranscriptWord] = [
        w for w in words if w.end_time > chunk.start_time and w.start_time < chunk.end_time
    ]
    duration = max(0.001, chunk.end_time - chunk.start_time)
    tokens = split_words(chunk.text)
    word_count = chunk.word_count if chunk.word_count > 0 else len(tokens)
    return RuleScores(
        speaking_rate=speaking_rate_score(word_count / duration),
        content_density=content_density(tokens),
        engagement_markers=engagement_markers(chunk.text),
        silence_ratio=voiced_ratio(chunk, in_chunk),
    )
