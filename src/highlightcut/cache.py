"""Per-project cache for highlight artifacts and transcript contexts.

The in-memory maps are authoritative. A SQLite file, written by one
background thread, only adds durability: a failed write is logged and
otherwise ignored.
"""
from __future__ import annotations

import json
import logging
import queue
import sqlite3
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import HighlightPlan, ScoredSegment, TranscriptContext
from .timeline import TimelineTrack, build_timeline_fingerprint
from .utils import utc_iso

log = logging.getLogger("highlightcut.cache")

DB_FILENAME = "highlight_cache.sqlite"

_UNSET: Any = object()


@dataclass(frozen=True)
class HighlightCacheState:
    scored_segments: Optional[List[ScoredSegment]] = None
    highlight_plan: Optional[HighlightPlan] = None
    asset_id: Optional[str] = None
    timeline_fingerprint: Optional[str] = None
    score_params: Optional[Dict[str, Any]] = None
    updated_at: str = field(default_factory=utc_iso)

    @property
    def has_artifacts(self) -> bool:
        return bool(self.scored_segments) or self.highlight_plan is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scoredSegments": [s.to_dict() for s in self.scored_segments] if self.scored_segments is not None else None,
            "highlightPlan": self.highlight_plan.to_dict() if self.highlight_plan is not None else None,
            "assetId": self.asset_id,
            "timelineFingerprint": self.timeline_fingerprint,
            "scoreParams": self.score_params,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HighlightCacheState":
        segs = d.get("scoredSegments")
        plan = d.get("highlightPlan")
        return cls(
            scored_segments=[ScoredSegment.from_dict(s) for s in segs] if isinstance(segs, list) else None,
            highlight_plan=HighlightPlan.from_dict(plan) if isinstance(plan, dict) else None,
            asset_id=d.get("assetId"),
            timeline_fingerprint=d.get("timelineFingerprint"),
            score_params=d.get("scoreParams"),
            updated_at=str(d.get("updatedAt") or utc_iso()),
        )


def is_cache_stale(state: HighlightCacheState, fingerprint: str) -> bool:
    if not state.timeline_fingerprint:
        return state.has_artifacts
    return state.timeline_fingerprint != fingerprint


class _SQLiteWriter:
    """Single background thread applying queued writes in order."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._queue: "queue.Queue[Optional[Tuple[str, Tuple[Any, ...]]]]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="highlight-cache-writer", daemon=True)
        self._thread.start()

    def submit(self, sql: str, params: Tuple[Any, ...]) -> None:
        self._queue.put((sql, params))

    def flush(self) -> None:
        self._queue.join()

    def close(self) -> None:
        self._queue.put(None)
        self._thread.join(timeout=5.0)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                sql, params = item
                conn = sqlite3.connect(str(self.db_path))
                try:
                    conn.execute(sql, params)
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                log.warning(f"[cache] Persist failed: {e}")
            finally:
                self._queue.task_done()


class HighlightCacheStore:
    """Cache service constructed per session and passed by reference."""

    def __init__(self, db_path: Optional[Path] = None):
        self._lock = threading.Lock()
        self._states: Dict[str, HighlightCacheState] = {}
        self._transcripts: Dict[str, TranscriptContext] = {}
        self._hydrated: set = set()
        self.db_path: Optional[Path] = None
        self._writer: Optional[_SQLiteWriter] = None
        if db_path is not None:
            db_path = Path(db_path)
            if db_path.suffix != ".sqlite":
                db_path = db_path / DB_FILENAME
            try:
                self._init_db(db_path)
                self.db_path = db_path
                self._writer = _SQLiteWriter(db_path)
            except (OSError, sqlite3.Error) as e:
                log.warning(f"[cache] Persistence disabled ({db_path}): {e}")

    def _init_db(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS highlight_cache (
                    project_id TEXT PRIMARY KEY,
                    state_json TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transcript_cache (
                    cache_key TEXT PRIMARY KEY,
                    context_json TEXT,
                    updated_at TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _load_row(self, sql: str, key: str) -> Optional[Dict[str, Any]]:
        if self.db_path is None:
            return None
        try:
            conn = sqlite3.connect(str(self.db_path))
            try:
                row = conn.execute(sql, (key,)).fetchone()
            finally:
                conn.close()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, ValueError) as e:
            log.warning(f"[cache] Hydrate failed for {key}: {e}")
            return None

    def _hydrate(self, project_id: str) -> None:
        # Caller holds the lock.
        if project_id in self._hydrated:
            return
        self._hydrated.add(project_id)
        if project_id in self._states:
            return
        data = self._load_row("SELECT state_json FROM highlight_cache WHERE project_id = ?", project_id)
        if data is not None:
            try:
                self._states[project_id] = HighlightCacheState.from_dict(data)
                log.debug(f"[cache] Hydrated project {project_id}")
            except (KeyError, TypeError, ValueError) as e:
                log.warning(f"[cache] Ignoring unreadable state for {project_id}: {e}")

    def _persist_state(self, project_id: str, state: Optional[HighlightCacheState]) -> None:
        if self._writer is None:
            return
        if state is None:
            self._writer.submit("DELETE FROM highlight_cache WHERE project_id = ?", (project_id,))
            return
        self._writer.submit(
            "INSERT OR REPLACE INTO highlight_cache (project_id, state_json, updated_at) VALUES (?, ?, ?)",
            (project_id, json.dumps(state.to_dict(), ensure_ascii=False), state.updated_at),
        )

    # -- highlight artifacts --------------------------------------------------

    def get(self, project_id: str) -> HighlightCacheState:
        with self._lock:
            self._hydrate(project_id)
            return self._states.get(project_id) or HighlightCacheState()

    def update(
        self,
        project_id: str,
        *,
        scored_segments: Any = _UNSET,
        highlight_plan: Any = _UNSET,
        asset_id: Any = _UNSET,
        timeline_fingerprint: Any = _UNSET,
        score_params: Any = _UNSET,
    ) -> HighlightCacheState:
        """Read-modify-write of one project's state as a single locked step."""
        changes: Dict[str, Any] = {}
        if scored_segments is not _UNSET:
            changes["scored_segments"] = list(scored_segments) if scored_segments is not None else None
        if highlight_plan is not _UNSET:
            changes["highlight_plan"] = highlight_plan
        if asset_id is not _UNSET:
            changes["asset_id"] = asset_id
        if timeline_fingerprint is not _UNSET:
            changes["timeline_fingerprint"] = timeline_fingerprint
        if score_params is not _UNSET:
            changes["score_params"] = score_params

        with self._lock:
            self._hydrate(project_id)
            current = self._states.get(project_id) or HighlightCacheState()
            state = replace(current, updated_at=utc_iso(), **changes)
            self._states[project_id] = state
            self._persist_state(project_id, state)
        return state

    def check_freshness(
        self,
        project_id: str,
        tracks: Sequence[TimelineTrack],
    ) -> Tuple[HighlightCacheState, str, bool]:
        """Compare the stored fingerprint to the timeline's.

        On mismatch the scored segments and plan are dropped in the same
        locked step, so stale artifacts are never handed out.
        Returns ``(state, fingerprint, was_stale)``; ``was_stale`` is True
        only when artifacts were dropped.
        """
        fingerprint = build_timeline_fingerprint(tracks)
        with self._lock:
            self._hydrate(project_id)
            current = self._states.get(project_id) or HighlightCacheState()
            if not is_cache_stale(current, fingerprint):
                return current, fingerprint, False
            if not current.has_artifacts:
                state = replace(current, timeline_fingerprint=fingerprint, updated_at=utc_iso())
                self._states[project_id] = state
                self._persist_state(project_id, state)
                return state, fingerprint, False
            state = replace(
                current,
                scored_segments=None,
                highlight_plan=None,
                score_params=None,
                timeline_fingerprint=fingerprint,
                updated_at=utc_iso(),
            )
            self._states[project_id] = state
            self._persist_state(project_id, state)
        log.info(f"[cache] Timeline changed for {project_id}; cached highlights invalidated")
        return state, fingerprint, True

    # -- transcript contexts ----------------------------------------------------

    def get_transcript_context(self, cache_key: str) -> Optional[TranscriptContext]:
        with self._lock:
            ctx = self._transcripts.get(cache_key)
            if ctx is not None:
                return ctx
        data = self._load_row("SELECT context_json FROM transcript_cache WHERE cache_key = ?", cache_key)
        if data is None:
            return None
        ctx = TranscriptContext.from_dict(data)
        with self._lock:
            self._transcripts.setdefault(cache_key, ctx)
        return ctx

    def set_transcript_context(self, cache_key: str, context: TranscriptContext) -> None:
        with self._lock:
            self._transcripts[cache_key] = context
        if self._writer is not None:
            self._writer.submit(
                "INSERT OR REPLACE INTO transcript_cache (cache_key, context_json, updated_at) VALUES (?, ?, ?)",
                (cache_key, json.dumps(context.to_dict(), ensure_ascii=False), utc_iso()),
            )

    # -- lifecycle --------------------------------------------------------------

    def flush(self) -> None:
        """Block until queued writes are on disk."""
        if self._writer is not None:
            self._writer.flush()

    def clear(self) -> None:
        with self._lock:
            self._states.clear()
            self._transcripts.clear()
            self._hydrated.clear()
            if self._writer is not None:
                self._writer.submit("DELETE FROM highlight_cache WHERE 1 = ?", (1,))
                self._writer.submit("DELETE FROM transcript_cache WHERE 1 = ?", (1,))
                # Later hydration must not see the old rows.
                self._writer.flush()

    def close(self) -> None:
        if self._writer is not None:
            self._writer.flush()
            self._writer.close()
            self._writer = None
