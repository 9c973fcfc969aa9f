"""Data model for the highlight pipeline.

Every record serializes through ``to_dict()`` / ``from_dict()`` with the
camelCase keys used on the tool and HTTP surface.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TRANSCRIPT_SOURCES = ("whisper", "captions", "mixed", "none")


@dataclass(frozen=True)
class TranscriptSegment:
    start_time: float
    end_time: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"startTime": self.start_time, "endTime": self.end_time, "text": self.text}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TranscriptSegment":
        return cls(
            start_time=float(d.get("startTime", d.get("start", 0.0))),
            end_time=float(d.get("endTime", d.get("end", 0.0))),
            text=str(d.get("text", "")),
        )


# Words carry the same shape as segments.
TranscriptWord = TranscriptSegment


@dataclass(frozen=True)
class TranscriptContext:
    """Read-only transcript input for the pipeline."""
    segments: List[TranscriptSegment] = field(default_factory=list)
    words: List[TranscriptWord] = field(default_factory=list)
    source: str = "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "words": [w.to_dict() for w in self.words],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TranscriptContext":
        source = str(d.get("source", "none"))
        if source not in TRANSCRIPT_SOURCES:
            source = "none"
        return cls(
            segments=[TranscriptSegment.from_dict(s) for s in d.get("segments", []) or []],
            words=[TranscriptSegment.from_dict(w) for w in d.get("words", []) or []],
            source=source,
        )


@dataclass(frozen=True)
class TranscriptChunk:
    """Atomic scoring unit derived from the transcript."""
    index: int
    start_time: float
    end_time: float
    text: str
    word_count: int

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "text": self.text,
            "wordCount": self.word_count,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TranscriptChunk":
        return cls(
            index=int(d["index"]),
            start_time=float(d["startTime"]),
            end_time=float(d["endTime"]),
            text=str(d.get("text", "")),
            word_count=int(d.get("wordCount", 0)),
        )


@dataclass(frozen=True)
class RuleScores:
    """Deterministic rule features, each in [0, 1]."""
    speaking_rate: float
    content_density: float
    engagement_markers: float
    silence_ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speakingRate": self.speaking_rate,
            "contentDensity": self.content_density,
            "engagementMarkers": self.engagement_markers,
            "silenceRatio": self.silence_ratio,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RuleScores":
        return cls(
            speaking_rate=float(d.get("speakingRate", 0.0)),
            content_density=float(d.get("contentDensity", 0.0)),
            engagement_markers=float(d.get("engagementMarkers", 0.0)),
            silence_ratio=float(d.get("silenceRatio", 0.0)),
        )


@dataclass(frozen=True)
class SemanticScores:
    """LLM semantic axes, integers in [1, 10]."""
    importance: int
    emotional_intensity: int
    hook_potential: int
    standalone: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "importance": self.importance,
            "emotionalIntensity": self.emotional_intensity,
            "hookPotential": self.hook_potential,
            "standalone": self.standalone,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SemanticScores":
        return cls(
            importance=int(d.get("importance", 1)),
            emotional_intensity=int(d.get("emotionalIntensity", 1)),
            hook_potential=int(d.get("hookPotential", 1)),
            standalone=int(d.get("standalone", 1)),
        )


@dataclass(frozen=True)
class VisualScores:
    frame_quality: float
    visual_interest: float
    has_valid_frame: bool

    @classmethod
    def invalid(cls) -> "VisualScores":
        return cls(frame_quality=0.0, visual_interest=0.0, has_valid_frame=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frameQuality": self.frame_quality,
            "visualInterest": self.visual_interest,
            "hasValidFrame": self.has_valid_frame,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VisualScores":
        return cls(
            frame_quality=float(d.get("frameQuality", 0.0)),
            visual_interest=float(d.get("visualInterest", 0.0)),
            has_valid_frame=bool(d.get("hasValidFrame", False)),
        )


@dataclass(frozen=True)
class ScoringWeights:
    rule: float
    semantic: float
    visual: float

    def to_dict(self) -> Dict[str, Any]:
        return {"rule": self.rule, "semantic": self.semantic, "visual": self.visual}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScoringWeights":
        return cls(
            rule=float(d.get("rule", 0.0)),
            semantic=float(d.get("semantic", 0.0)),
            visual=float(d.get("visual", 0.0)),
        )


@dataclass(frozen=True)
class ScoredSegment:
    chunk: TranscriptChunk
    rule_scores: RuleScores
    semantic_scores: Optional[SemanticScores] = None
    visual_scores: Optional[VisualScores] = None
    combined_score: float = 0.0
    rank: int = 0
    thumbnail: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.chunk.duration

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "chunk": self.chunk.to_dict(),
            "ruleScores": self.rule_scores.to_dict(),
            "semanticScores": self.semantic_scores.to_dict() if self.semantic_scores else None,
            "visualScores": self.visual_scores.to_dict() if self.visual_scores else None,
            "combinedScore": self.combined_score,
            "rank": self.rank,
        }
        if self.thumbnail:
            d["thumbnail"] = self.thumbnail
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScoredSegment":
        sem = d.get("semanticScores")
        vis = d.get("visualScores")
        return cls(
            chunk=TranscriptChunk.from_dict(d["chunk"]),
            rule_scores=RuleScores.from_dict(d.get("ruleScores", {})),
            semantic_scores=SemanticScores.from_dict(sem) if isinstance(sem, dict) else None,
            visual_scores=VisualScores.from_dict(vis) if isinstance(vis, dict) else None,
            combined_score=float(d.get("combinedScore", 0.0)),
            rank=int(d.get("rank", 0)),
            thumbnail=d.get("thumbnail") or None,
        )


@dataclass(frozen=True)
class SelectedSegment:
    chunk: TranscriptChunk
    combined_score: float
    reason: str
    thumbnail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "chunk": self.chunk.to_dict(),
            "combinedScore": self.combined_score,
            "reason": self.reason,
        }
        if self.thumbnail:
            d["thumbnail"] = self.thumbnail
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SelectedSegment":
        return cls(
            chunk=TranscriptChunk.from_dict(d["chunk"]),
            combined_score=float(d.get("combinedScore", 0.0)),
            reason=str(d.get("reason", "")),
            thumbnail=d.get("thumbnail") or None,
        )


@dataclass(frozen=True)
class HighlightPlan:
    target_duration: float
    actual_duration: float
    segments: List[SelectedSegment]
    total_segments: int
    coverage_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetDuration": self.target_duration,
            "actualDuration": self.actual_duration,
            "segments": [s.to_dict() for s in self.segments],
            "totalSegments": self.total_segments,
            "coveragePercent": self.coverage_percent,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HighlightPlan":
        return cls(
            target_duration=float(d.get("targetDuration", 0.0)),
            actual_duration=float(d.get("actualDuration", 0.0)),
            segments=[SelectedSegment.from_dict(s) for s in d.get("segments", []) or []],
            total_segments=int(d.get("totalSegments", 0)),
            coverage_percent=float(d.get("coveragePercent", 0.0)),
        )


@dataclass(frozen=True)
class TimeRange:
    start: float
    end: float

    @property
    def length(self) -> float:
        return max(0.0, self.end - self.start)

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimeRange":
        return cls(start=float(d["start"]), end=float(d["end"]))


@dataclass
class LLMScoringDiagnostics:
    total_blocks: int = 0
    failed_blocks: int = 0
    failed_samples: List[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.total_blocks > 0 and self.failed_blocks >= self.total_blocks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalBlocks": self.total_blocks,
            "failedBlocks": self.failed_blocks,
            "failedSamples": list(self.failed_samples),
            "allFailed": self.all_failed,
        }


@dataclass
class ToolResult:
    """Structured outcome of a tool call. Never raised, always returned."""
    success: bool
    message: str
    error_code: Optional[str] = None
    degraded: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "errorCode": self.error_code,
            "degraded": self.degraded,
            "data": self.data,
        }
