"""Tests for the highlight cache store."""

from dataclasses import replace

from highlightcut.cache import HighlightCacheState, HighlightCacheStore, is_cache_stale
from highlightcut.models import (
    HighlightPlan,
    RuleScores,
    ScoredSegment,
    TranscriptChunk,
    TranscriptContext,
    TranscriptSegment,
)
from highlightcut.timeline import build_timeline_fingerprint

from conftest import three_clip_tracks


def _segments():
    chunk = TranscriptChunk(index=0, start_time=0.0, end_time=10.0, text="hello world", word_count=2)
    return [ScoredSegment(chunk=chunk, rule_scores=RuleScores(0.1, 0.2, 0.3, 0.4), combined_score=25.0, rank=1)]


def _moved_tracks():
    tracks = three_clip_tracks()
    elements = list(tracks[0].elements)
    elements[0] = replace(elements[0], duration=39.0)
    return [tracks[0].with_elements(elements)]


class TestStaleness:
    def test_empty_state_is_not_stale(self):
        assert is_cache_stale(HighlightCacheState(), "abc") is False

    def test_artifacts_without_fingerprint_are_stale(self):
        assert is_cache_stale(HighlightCacheState(scored_segments=_segments()), "abc") is True

    def test_fingerprint_mismatch(self):
        state = HighlightCacheState(scored_segments=_segments(), timeline_fingerprint="old")
        assert is_cache_stale(state, "new") is True
        assert is_cache_stale(state, "old") is False


class TestCheckFreshness:
    def test_stale_artifacts_are_dropped(self):
        store = HighlightCacheStore()
        tracks = three_clip_tracks()
        store.update(
            "p",
            scored_segments=_segments(),
            timeline_fingerprint=build_timeline_fingerprint(tracks),
            score_params={"useLLM": False},
            asset_id="vid-1",
        )

        state, fp, stale = store.check_freshness("p", tracks)
        assert stale is False
        assert state.scored_segments

        state, fp, stale = store.check_freshness("p", _moved_tracks())
        assert stale is True
        assert state.scored_segments is None
        assert state.highlight_plan is None
        assert state.score_params is None
        assert state.asset_id == "vid-1"
        assert store.get("p").timeline_fingerprint == fp

    def test_fingerprint_recorded_when_nothing_cached(self):
        store = HighlightCacheStore()
        state, fp, stale = store.check_freshness("p", three_clip_tracks())
        assert stale is False
        assert state.timeline_fingerprint == fp

    def test_update_keeps_unspecified_fields(self):
        store = HighlightCacheStore()
        store.update("p", scored_segments=_segments(), asset_id="vid-1")
        plan = HighlightPlan(60.0, 10.0, [], 1, 10.0)
        state = store.update("p", highlight_plan=plan)
        assert state.asset_id == "vid-1"
        assert state.scored_segments == _segments()
        assert state.highlight_plan == plan
        assert store.get("other").has_artifacts is False


def test_state_persists_across_stores(tmp_path):
    store = HighlightCacheStore(tmp_path)
    store.update("p", scored_segments=_segments(), timeline_fingerprint="fp", score_params={"assetId": "vid-1"})
    store.close()
    assert (tmp_path / "highlight_cache.sqlite").exists()

    reopened = HighlightCacheStore(tmp_path)
    state = reopened.get("p")
    assert state.scored_segments == _segments()
    assert state.timeline_fingerprint == "fp"
    assert state.score_params == {"assetId": "vid-1"}
    reopened.close()


def test_transcript_context_persists(tmp_path):
    ctx = TranscriptContext(segments=[TranscriptSegment(0.0, 2.0, "hi there")], words=[], source="captions")
    store = HighlightCacheStore(tmp_path / "cache.sqlite")
    store.set_transcript_context("p:key", ctx)
    store.flush()

    reopened = HighlightCacheStore(tmp_path / "cache.sqlite")
    assert reopened.get_transcript_context("p:key") == ctx
    assert reopened.get_transcript_context("p:other") is None
    store.close()
    reopened.close()


def test_clear_removes_persisted_rows(tmp_path):
    store = HighlightCacheStore(tmp_path)
    store.update("p", scored_segments=_segments())
    store.clear()
    assert store.get("p").scored_segments is None
    store.close()
    assert HighlightCacheStore(tmp_path).get("p").scored_segments is None


def test_state_dict_round_trip():
    state = HighlightCacheState(scored_segments=_segments(), asset_id="vid-1", timeline_fingerprint="fp")
    d = state.to_dict()
    assert d["scoredSegments"][0]["ruleScores"]["silenceRatio"] == 0.4
    assert HighlightCacheState.from_dict(d) == state
