"""Highlight tool surface.

Four ordered operations, each returning a ``ToolResult``:

    score_highlights -> validate_highlights_visual (optional)
        -> generate_highlight_plan -> apply_highlight_cut

Each later call needs the previous call's cached output, and that output
must still match the timeline fingerprint. ``trim_transcript_words`` applies
word-level deletions through the same range edit engine.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import errors
from .ai.helpers import get_llm_client
from .ai.llm_client import ChatProvider
from .ai.semantic_scorer import SemanticConfig, score_with_llm
from .ai.visual_scorer import MAX_CONCURRENCY, MIN_CONCURRENCY, VisualConfig, score_with_vision
from .analysis_chunks import normalize_range, segment_transcript
from .analysis_rules import compute_rule_scores
from .cache import HighlightCacheStore
from .cancellation import CancellationToken, check_cancel
from .concurrency import map_with_concurrency
from .errors import ExecutionCancelled, HighlightError, InputError, StaleCacheError
from .frames import FrameSource, capture_thumbnail, create_timeline_to_asset_mapper
from .models import (
    LLMScoringDiagnostics,
    ScoredSegment,
    TimeRange,
    ToolResult,
    TranscriptContext,
    TranscriptWord,
)
from .profile import default_profile
from .range_edit import apply_delete_ranges, apply_keep_ranges, compute_delete_ranges_from_words
from .scoring import FusionWeights, compute_combined_score, fuse_segments
from .selection import SelectionConfig, normalize_target, normalize_tolerance, select_segments
from .timeline import (
    MediaAsset,
    TimelineCollaborator,
    TimelineTrack,
    build_transcript_cache_key,
)
from .transcript_context import DEFAULT_TRANSCRIBE_TIMEOUT_S, TranscriptSource, build_transcript_context
from .utils import clamp, to_bool_or_default, to_float_or_default

log = logging.getLogger("highlightcut.tools")

TOP_SEGMENTS_PREVIEW = 10

ProviderFactory = Callable[[], Optional[ChatProvider]]
FollowUp = Callable[[TimelineCollaborator], ToolResult]


# -- requests -----------------------------------------------------------------

def _opt_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _opt_float(value: Any) -> Optional[float]:
    n = to_float_or_default(value, math.nan)
    return None if math.isnan(n) else n


@dataclass(frozen=True)
class ScoreHighlightsRequest:
    video_asset_id: Optional[str] = None
    segment_min_seconds: Optional[float] = None
    segment_max_seconds: Optional[float] = None
    use_llm: bool = True
    force: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScoreHighlightsRequest":
        return cls(
            video_asset_id=_opt_str(d.get("videoAssetId")),
            segment_min_seconds=_opt_float(d.get("segmentMinSeconds")),
            segment_max_seconds=_opt_float(d.get("segmentMaxSeconds")),
            use_llm=to_bool_or_default(d.get("useLLM"), True),
            force=to_bool_or_default(d.get("force"), False),
        )


@dataclass(frozen=True)
class ValidateVisualRequest:
    video_asset_id: Optional[str] = None
    top_n: Optional[int] = None
    frame_concurrency: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ValidateVisualRequest":
        top_n = _opt_float(d.get("topN"))
        conc = _opt_float(d.get("frameConcurrency"))
        return cls(
            video_asset_id=_opt_str(d.get("videoAssetId")),
            top_n=int(math.floor(top_n)) if top_n is not None else None,
            frame_concurrency=int(math.floor(conc)) if conc is not None else None,
        )


@dataclass(frozen=True)
class PlanRequest:
    target_duration: Optional[float] = None
    tolerance: Optional[float] = None
    include_hook: Optional[bool] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PlanRequest":
        hook = d.get("includeHook")
        return cls(
            target_duration=_opt_float(d.get("targetDuration")),
            tolerance=_opt_float(d.get("tolerance")),
            include_hook=to_bool_or_default(hook, True) if hook is not None else None,
        )


@dataclass(frozen=True)
class ApplyCutRequest:
    add_captions: bool = False
    remove_silence: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ApplyCutRequest":
        return cls(
            add_captions=to_bool_or_default(d.get("addCaptions"), False),
            remove_silence=to_bool_or_default(d.get("removeSilence"), False),
        )


@dataclass(frozen=True)
class TrimWordsRequest:
    words: List[TranscriptWord] = field(default_factory=list)
    margin: Optional[float] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrimWordsRequest":
        words = []
        for w in d.get("words", []) or []:
            if isinstance(w, dict):
                words.append(TranscriptWord.from_dict(w))
        return cls(words=words, margin=_opt_float(d.get("margin")))


# -- tools --------------------------------------------------------------------

class HighlightTools:
    """Stateful entry points over one timeline and one cache store.

    Entry points for the project run one at a time: each holds the tool lock
    from its freshness check through its cache update or timeline commit.
    """

    def __init__(
        self,
        timeline: TimelineCollaborator,
        *,
        cache: Optional[HighlightCacheStore] = None,
        provider_factory: Optional[ProviderFactory] = None,
        frame_source: Optional[FrameSource] = None,
        transcript_source: Optional[TranscriptSource] = None,
        follow_ups: Optional[Dict[str, FollowUp]] = None,
        profile: Optional[Dict[str, Any]] = None,
    ):
        self.timeline = timeline
        self.cache = cache or HighlightCacheStore()
        self.frame_source = frame_source
        self.transcript_source = transcript_source
        self.follow_ups = dict(follow_ups or {})
        self._lock = threading.RLock()

        profile = profile or default_profile()
        hl = profile.get("highlights", {})
        self.chunking = normalize_range(
            hl.get("chunking", {}).get("min_seconds"),
            hl.get("chunking", {}).get("max_seconds"),
        )
        self.semantic_cfg = SemanticConfig.from_dict(hl.get("semantic", {}))
        self.semantic_enabled = bool(hl.get("semantic", {}).get("enabled", True))
        self.visual_cfg = VisualConfig.from_dict(hl.get("visual", {}))
        self.selection_cfg = SelectionConfig.from_dict(hl.get("selection", {}))
        self.weights = FusionWeights.from_dict(hl.get("weights", {}))
        self.transcribe_timeout_s = to_float_or_default(
            hl.get("transcript", {}).get("timeout_s"), DEFAULT_TRANSCRIBE_TIMEOUT_S
        )

        if provider_factory is None:
            llm_cfg = profile.get("ai", {}).get("llm", {})
            provider_factory = lambda: get_llm_client(llm_cfg, probe=False)  # noqa: E731
        self.provider_factory = provider_factory

    @property
    def project_id(self) -> str:
        return getattr(self.timeline, "project_id", "default") or "default"

    # -- shared helpers -------------------------------------------------------

    def _run(self, failed_code: str, label: str, fn: Callable[[], ToolResult]) -> ToolResult:
        try:
            with self._lock:
                return fn()
        except ExecutionCancelled as e:
            log.info(f"[tools] {label} cancelled")
            return ToolResult(success=False, message=str(e), error_code=errors.EXECUTION_CANCELLED)
        except HighlightError as e:
            log.warning(f"[tools] {label} failed: {e} ({e.error_code})")
            return ToolResult(success=False, message=str(e), error_code=e.error_code)
        except Exception as e:
            log.error(f"[tools] {label} failed: {e}", exc_info=True)
            return ToolResult(success=False, message=f"{label} failed: {e}", error_code=failed_code)

    def _available_provider(self) -> Optional[ChatProvider]:
        provider = self.provider_factory()
        if provider is None:
            return None
        try:
            return provider if provider.is_available() else None
        except Exception as e:
            log.warning(f"[tools] Provider availability check failed: {e}")
            return None

    def resolve_video_asset(self, video_asset_id: Optional[str], tracks: Sequence[TimelineTrack]) -> MediaAsset:
        """Explicit id, then cached asset, then selection, then timeline order."""
        videos = [a for a in self.timeline.get_assets() if a.type == "video" and a.has_file]
        if not videos:
            raise InputError("No usable video asset in the project", error_code=errors.NO_VIDEO_ASSET)
        by_id = {a.id: a for a in videos}

        if video_asset_id:
            if video_asset_id not in by_id:
                raise InputError(f"Video asset not found: {video_asset_id}", error_code=errors.VIDEO_ASSET_NOT_FOUND)
            return by_id[video_asset_id]

        cached = self.cache.get(self.project_id).asset_id
        if cached in by_id:
            return by_id[cached]

        elements = {(t.id, e.id): e for t in tracks for e in t.elements}
        for ref in self.timeline.get_selected_elements():
            e = elements.get((ref.track_id, ref.element_id))
            if e is not None and e.type == "video" and e.media_id in by_id:
                return by_id[e.media_id]

        placed = sorted(
            (e for t in tracks for e in t.elements if e.type == "video" and e.media_id in by_id),
            key=lambda e: e.start_time,
        )
        if placed:
            return by_id[placed[0].media_id]
        return videos[0]

    def get_transcript_context(
        self,
        tracks: Sequence[TimelineTrack],
        cancel: Optional[CancellationToken] = None,
    ) -> TranscriptContext:
        key = build_transcript_cache_key(self.project_id, tracks)
        cached = self.cache.get_transcript_context(key)
        if cached is not None:
            return cached
        context = build_transcript_context(
            tracks, self.transcript_source, cancel, timeout_s=self.transcribe_timeout_s
        )
        self.cache.set_transcript_context(key, context)
        return context

    # -- score_highlights -----------------------------------------------------

    def score_highlights(
        self,
        request: Optional[ScoreHighlightsRequest] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolResult:
        request = request or ScoreHighlightsRequest()
        return self._run(errors.SCORE_HIGHLIGHTS_FAILED, "Highlight scoring",
                         lambda: self._score_highlights(request, cancel))

    def _score_highlights(self, req: ScoreHighlightsRequest, cancel: Optional[CancellationToken]) -> ToolResult:
        check_cancel(cancel)
        pid = self.project_id
        tracks = self.timeline.get_tracks()
        state, fingerprint, _ = self.cache.check_freshness(pid, tracks)
        asset = self.resolve_video_asset(req.video_asset_id, tracks)

        bounds = normalize_range(
            req.segment_min_seconds if req.segment_min_seconds is not None else self.chunking.min_seconds,
            req.segment_max_seconds if req.segment_max_seconds is not None else self.chunking.max_seconds,
        )
        use_llm = req.use_llm and self.semantic_enabled
        params = {
            "assetId": asset.id,
            "segmentMinSeconds": bounds.min_seconds,
            "segmentMaxSeconds": bounds.max_seconds,
            "useLLM": use_llm,
        }

        if not req.force and state.scored_segments and state.score_params == params:
            log.info(f"[tools] Reusing {len(state.scored_segments)} cached scored segments")
            ranked = state.scored_segments
            return ToolResult(
                success=True,
                message=f"Reused cached scores for {len(ranked)} segments",
                data={
                    "assetId": asset.id,
                    "cached": True,
                    "segmentCount": len(ranked),
                    "hasSemantic": any(s.semantic_scores is not None for s in ranked),
                    "topSegments": [s.to_dict() for s in ranked[:TOP_SEGMENTS_PREVIEW]],
                    "segments": [s.to_dict() for s in ranked],
                    "cachedAt": state.updated_at,
                    "timelineFingerprint": fingerprint,
                },
            )

        context = self.get_transcript_context(tracks, cancel)
        if not context.segments:
            raise InputError("No transcript available; generate captions or check the audio",
                             error_code=errors.NO_TRANSCRIPT)

        chunks = segment_transcript(context, bounds.min_seconds, bounds.max_seconds)
        if not chunks:
            raise InputError("Transcript produced no chunks to score", error_code=errors.NO_CHUNKS)
        check_cancel(cancel)

        segments = []
        for chunk in chunks:
            rule = compute_rule_scores(chunk, context.words)
            segments.append(ScoredSegment(
                chunk=chunk,
                rule_scores=rule,
                combined_score=compute_combined_score(rule, None, None, self.weights),
            ))

        llm_mode = "enabled" if use_llm else "disabled"
        diagnostics: Optional[LLMScoringDiagnostics] = None
        semantic_map: Dict[int, Any] = {}
        if use_llm:
            provider = self._available_provider()
            check_cancel(cancel)
            if provider is None:
                llm_mode = "unavailable"
                log.warning("[tools] LLM unavailable; using rule scores only")
            else:
                semantic_map, diagnostics = score_with_llm(
                    chunks, provider, cfg=self.semantic_cfg, cancel=cancel
                )

        ranked = fuse_segments(segments, semantic=semantic_map, weights=self.weights)
        has_semantic = bool(semantic_map)
        check_cancel(cancel)

        saved = self.cache.update(
            pid,
            scored_segments=ranked,
            highlight_plan=None,
            asset_id=asset.id,
            timeline_fingerprint=fingerprint,
            score_params=params,
        )

        if has_semantic:
            suffix = " with semantic scores"
        elif llm_mode == "unavailable":
            suffix = " (LLM unavailable, rule scores only)"
        elif diagnostics is not None and diagnostics.all_failed:
            suffix = " (all LLM blocks failed, rule scores only)"
        else:
            suffix = " (rule scores)"
        degraded = use_llm and (
            llm_mode == "unavailable" or (diagnostics is not None and diagnostics.failed_blocks > 0)
        )

        return ToolResult(
            success=True,
            message=f"Scored {len(ranked)} segments{suffix}",
            degraded=degraded,
            data={
                "assetId": asset.id,
                "cached": False,
                "transcriptSource": context.source,
                "segmentCount": len(ranked),
                "hasSemantic": has_semantic,
                "llmMode": llm_mode,
                "llmDiagnostics": diagnostics.to_dict() if diagnostics is not None else None,
                "weights": self.weights.row(has_semantic, False).to_dict(),
                "topSegments": [s.to_dict() for s in ranked[:TOP_SEGMENTS_PREVIEW]],
                "segments": [s.to_dict() for s in ranked],
                "cachedAt": saved.updated_at,
                "timelineFingerprint": fingerprint,
            },
        )

    # -- validate_highlights_visual -------------------------------------------

    def validate_highlights_visual(
        self,
        request: Optional[ValidateVisualRequest] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolResult:
        request = request or ValidateVisualRequest()
        return self._run(errors.VALIDATE_HIGHLIGHTS_VISUAL_FAILED, "Visual validation",
                         lambda: self._validate_visual(request, cancel))

    def _validate_visual(self, req: ValidateVisualRequest, cancel: Optional[CancellationToken]) -> ToolResult:
        check_cancel(cancel)
        pid = self.project_id
        if not self.cache.get(pid).scored_segments:
            raise HighlightError("Run score_highlights first", error_code=errors.HIGHLIGHT_CACHE_MISSING)

        tracks = self.timeline.get_tracks()
        state, fingerprint, stale = self.cache.check_freshness(pid, tracks)
        if stale:
            raise StaleCacheError("Timeline changed; cached scores were discarded. Run score_highlights again",
                                  error_code=errors.HIGHLIGHT_CACHE_STALE)
        cached: List[ScoredSegment] = list(state.scored_segments or [])
        asset = self.resolve_video_asset(req.video_asset_id, tracks)

        top_n = max(1, req.top_n if req.top_n is not None else self.visual_cfg.top_n)
        concurrency = int(clamp(
            req.frame_concurrency if req.frame_concurrency is not None else self.visual_cfg.concurrency,
            MIN_CONCURRENCY, MAX_CONCURRENCY,
        ))

        provider = self._available_provider()
        check_cancel(cancel)
        if provider is None:
            return ToolResult(
                success=True,
                degraded=True,
                message="Provider unavailable; visual validation skipped and scores kept",
                data={
                    "assetId": asset.id,
                    "topN": top_n,
                    "validatedCount": 0,
                    "hasVisual": False,
                    "segments": [s.to_dict() for s in cached],
                    "timelineFingerprint": fingerprint,
                },
            )

        top = sorted(cached, key=lambda s: -s.combined_score)[:top_n]
        if self.frame_source is not None:
            mapper = create_timeline_to_asset_mapper(tracks, asset.id)
            source = self.frame_source

            def _with_frame(seg: ScoredSegment, _i: int) -> ScoredSegment:
                check_cancel(cancel)
                center = (seg.chunk.start_time + seg.chunk.end_time) / 2.0
                url = capture_thumbnail(source, asset.id, center, mapper)
                check_cancel(cancel)
                return replace(seg, thumbnail=url)

            candidates = map_with_concurrency(top, concurrency, _with_frame)
        else:
            candidates = list(top)

        visual_map = score_with_vision(
            candidates, top_n, provider,
            concurrency=concurrency,
            temperature=self.visual_cfg.temperature,
            cancel=cancel,
        )

        by_index = {s.chunk.index: s for s in cached}
        for c in candidates:
            by_index[c.chunk.index] = c
        reranked = fuse_segments(list(by_index.values()), visual=visual_map, weights=self.weights)
        check_cancel(cancel)

        saved = self.cache.update(
            pid,
            scored_segments=reranked,
            asset_id=asset.id,
            timeline_fingerprint=fingerprint,
        )
        has_semantic = any(s.semantic_scores is not None for s in reranked)
        has_visual = bool(visual_map)
        valid = sum(1 for v in visual_map.values() if v.has_valid_frame)

        return ToolResult(
            success=True,
            message=f"Visually validated {len(visual_map)} segments ({valid} with a usable frame)",
            degraded=valid < len(visual_map),
            data={
                "assetId": asset.id,
                "topN": top_n,
                "validatedCount": len(visual_map),
                "validFrameCount": valid,
                "hasVisual": has_visual,
                "weights": self.weights.row(has_semantic, has_visual).to_dict(),
                "topSegments": [s.to_dict() for s in reranked[:TOP_SEGMENTS_PREVIEW]],
                "segments": [s.to_dict() for s in reranked],
                "cachedAt": saved.updated_at,
                "timelineFingerprint": fingerprint,
            },
        )

    # -- generate_highlight_plan ----------------------------------------------

    def generate_highlight_plan(
        self,
        request: Optional[PlanRequest] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolResult:
        request = request or PlanRequest()
        return self._run(errors.GENERATE_HIGHLIGHT_PLAN_FAILED, "Highlight plan",
                         lambda: self._generate_plan(request, cancel))

    def _generate_plan(self, req: PlanRequest, cancel: Optional[CancellationToken]) -> ToolResult:
        check_cancel(cancel)
        pid = self.project_id
        if not self.cache.get(pid).scored_segments:
            raise HighlightError("Run score_highlights first", error_code=errors.HIGHLIGHT_CACHE_MISSING)

        tracks = self.timeline.get_tracks()
        state, fingerprint, stale = self.cache.check_freshness(pid, tracks)
        if stale:
            raise StaleCacheError("Timeline changed; cached scores were discarded. Run score_highlights again",
                                  error_code=errors.HIGHLIGHT_CACHE_STALE)

        target = normalize_target(req.target_duration if req.target_duration is not None
                                  else self.selection_cfg.target_seconds)
        tolerance = normalize_tolerance(req.tolerance if req.tolerance is not None
                                        else self.selection_cfg.tolerance)
        include_hook = req.include_hook if req.include_hook is not None else self.selection_cfg.include_hook

        plan = select_segments(state.scored_segments or [], target, tolerance, include_hook=include_hook)
        if not plan.segments:
            raise HighlightError("No segments could be selected; adjust the parameters and retry",
                                 error_code=errors.EMPTY_PLAN)

        saved = self.cache.update(pid, highlight_plan=plan, timeline_fingerprint=fingerprint)
        return ToolResult(
            success=True,
            message=f"Plan ready: {len(plan.segments)} segments, {plan.actual_duration:.2f}s",
            data={
                "plan": plan.to_dict(),
                "cachedAt": saved.updated_at,
                "timelineFingerprint": fingerprint,
            },
        )

    # -- apply_highlight_cut --------------------------------------------------

    def apply_highlight_cut(
        self,
        request: Optional[ApplyCutRequest] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolResult:
        request = request or ApplyCutRequest()
        return self._run(errors.APPLY_HIGHLIGHT_CUT_FAILED, "Highlight cut",
                         lambda: self._apply_cut(request, cancel))

    def _run_follow_up(self, step: str) -> Dict[str, Any]:
        fn = self.follow_ups.get(step)
        if fn is None:
            return {"step": step, "success": False, "message": f"{step} is not configured"}
        try:
            result = fn(self.timeline)
        except Exception as e:
            log.warning(f"[cut] Follow-up {step} raised: {e}")
            return {"step": step, "success": False, "message": str(e)}
        return {"step": step, "success": bool(result.success), "message": result.message}

    def _apply_cut(self, req: ApplyCutRequest, cancel: Optional[CancellationToken]) -> ToolResult:
        check_cancel(cancel)
        pid = self.project_id
        plan = self.cache.get(pid).highlight_plan
        if plan is None or not plan.segments:
            raise HighlightError("Run generate_highlight_plan first", error_code=errors.HIGHLIGHT_PLAN_MISSING)

        tracks = self.timeline.get_tracks()
        _, fingerprint, stale = self.cache.check_freshness(pid, tracks)
        if stale:
            raise StaleCacheError(
                "Timeline changed; cached plan was discarded. Run score_highlights and generate_highlight_plan again",
                error_code=errors.HIGHLIGHT_PLAN_STALE,
            )

        keep = [TimeRange(s.chunk.start_time, s.chunk.end_time) for s in plan.segments]
        check_cancel(cancel)
        result = apply_keep_ranges(self.timeline, keep, expected_fingerprint=fingerprint)

        follow_ups = []
        if req.add_captions:
            follow_ups.append(self._run_follow_up("generate_captions"))
        if req.remove_silence:
            follow_ups.append(self._run_follow_up("remove_silence"))
        failed = any(not f["success"] for f in follow_ups)

        new_fingerprint = self.cache.check_freshness(pid, self.timeline.get_tracks())[1]
        data = {
            "cutApplied": True,
            "keepRanges": [r.to_dict() for r in result.diff.keep_ranges or []],
            "deleteRanges": [r.to_dict() for r in result.delete_ranges],
            "splitCount": result.split_count,
            "deletedCount": result.deleted_count,
            "deletedRangeCount": len(result.delete_ranges),
            "diff": result.diff.to_dict(),
            "followUps": follow_ups,
            "plan": plan.to_dict(),
            "timelineFingerprint": new_fingerprint,
        }
        if failed:
            return ToolResult(
                success=False,
                message="Highlight cut applied, but a follow-up step failed",
                error_code=errors.APPLY_HIGHLIGHT_CUT_FAILED,
                data=data,
            )
        return ToolResult(
            success=True,
            message=(
                f"Highlight cut applied: removed {len(result.delete_ranges)} ranges, "
                f"{result.diff.before_seconds:.2f}s -> {result.diff.after_seconds:.2f}s"
            ),
            data=data,
        )

    # -- trim_transcript_words ------------------------------------------------

    def trim_transcript_words(
        self,
        request: TrimWordsRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> ToolResult:
        return self._run(errors.TRANSCRIPT_CUT_APPLY_FAILED, "Transcript trim",
                         lambda: self._trim_words(request, cancel))

    def _trim_words(self, req: TrimWordsRequest, cancel: Optional[CancellationToken]) -> ToolResult:
        check_cancel(cancel)
        ranges = compute_delete_ranges_from_words(req.words, req.margin)
        if not ranges:
            raise InputError("No valid words to delete", error_code=errors.NO_WORDS)
        result = apply_delete_ranges(self.timeline, ranges)
        return ToolResult(
            success=True,
            message=f"Removed {len(req.words)} words in {len(ranges)} ranges",
            data={
                "deleteRanges": [r.to_dict() for r in result.delete_ranges],
                "diff": result.diff.to_dict(),
            },
        )
