"""Range-based timeline editing.

Keep/delete interval algebra plus the split, delete and ripple-compress
primitives shared by the highlight cut and word-level transcript trimming.
Every apply goes through a commit guard: the new tracks are committed only
when they are non-empty and shorter than before by the deleted duration.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import errors
from .errors import RangeEditError, StaleCacheError
from .models import TimeRange, TranscriptWord
from .timeline import (
    ElementRef,
    TimelineCollaborator,
    TimelineElement,
    TimelineTrack,
    build_timeline_fingerprint,
    calculate_total_duration,
    is_main_track,
)
from .utils import round_time

log = logging.getLogger("highlightcut.cut")

EDIT_EPSILON = 1e-6
SELECT_EPSILON = 0.02
MIN_INTERVAL_SECONDS = 0.03
WORD_DELETE_MARGIN = 0.02
MIN_DRIFT_TOLERANCE = 0.05
DRIFT_TOLERANCE_RATIO = 0.001

ElementPredicate = Callable[[str, TimelineElement], bool]


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TimelineOperationDiff:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    moved: List[str] = field(default_factory=list)
    before_seconds: float = 0.0
    after_seconds: float = 0.0
    delta_seconds: float = 0.0
    keep_ranges: Optional[List[TimeRange]] = None
    delete_ranges: Optional[List[TimeRange]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "affectedElements": {
                "added": list(self.added),
                "removed": list(self.removed),
                "moved": list(self.moved),
            },
            "duration": {
                "beforeSeconds": self.before_seconds,
                "afterSeconds": self.after_seconds,
                "deltaSeconds": self.delta_seconds,
            },
        }
        if self.keep_ranges is not None:
            d["keepRanges"] = [r.to_dict() for r in self.keep_ranges]
        if self.delete_ranges is not None:
            d["deleteRanges"] = [r.to_dict() for r in self.delete_ranges]
        return d


@dataclass
class EditResult:
    tracks: List[TimelineTrack]
    diff: TimelineOperationDiff
    delete_ranges: List[TimeRange]
    split_count: int = 0
    deleted_count: int = 0
    moved_count: int = 0


# -- interval algebra ---------------------------------------------------------

def merge_ranges(ranges: Iterable[TimeRange], epsilon: float = SELECT_EPSILON) -> List[TimeRange]:
    """Minimal sorted disjoint cover; ranges touching within ``epsilon`` merge."""
    ordered = sorted((r for r in ranges if r.end > r.start), key=lambda r: r.start)
    merged: List[TimeRange] = []
    for r in ordered:
        if merged and r.start <= merged[-1].end + epsilon:
            last = merged[-1]
            merged[-1] = TimeRange(last.start, max(last.end, r.end))
            continue
        merged.append(r)
    return merged


def complement_ranges(
    total_duration: float,
    keep_ranges: Iterable[TimeRange],
    *,
    epsilon: float = SELECT_EPSILON,
    min_interval: float = MIN_INTERVAL_SECONDS,
) -> List[TimeRange]:
    """``[0, total_duration]`` minus the merged keep ranges.

    Gaps no longer than ``min_interval`` are not emitted.
    """
    keep = merge_ranges(keep_ranges, epsilon)
    if not keep:
        return [TimeRange(0.0, total_duration)] if total_duration > 0 else []

    deletes: List[TimeRange] = []
    cursor = 0.0
    for k in keep:
        if k.start > cursor + min_interval:
            deletes.append(TimeRange(cursor, k.start))
        cursor = max(cursor, k.end)
    if total_duration > cursor + min_interval:
        deletes.append(TimeRange(cursor, total_duration))
    return deletes


def compute_delete_ranges_from_words(
    words: Sequence[TranscriptWord],
    margin: Optional[float] = WORD_DELETE_MARGIN,
) -> List[TimeRange]:
    if not words:
        return []
    if margin is None or not math.isfinite(margin) or margin < 0:
        margin = WORD_DELETE_MARGIN
    ranges = []
    for w in words:
        if not (math.isfinite(w.start_time) and math.isfinite(w.end_time)):
            continue
        if w.end_time <= w.start_time:
            continue
        r = TimeRange(
            round_time(max(0.0, w.start_time - margin)),
            round_time(max(w.start_time, w.end_time + margin)),
        )
        if r.end > r.start:
            ranges.append(r)
    return merge_ranges(ranges, EDIT_EPSILON)


# -- track primitives ---------------------------------------------------------

def split_tracks_at_time(
    tracks: Sequence[TimelineTrack],
    split_time: float,
    *,
    should_include: Optional[ElementPredicate] = None,
    epsilon: float = EDIT_EPSILON,
    id_factory: Callable[[], str] = _new_id,
) -> Tuple[List[TimelineTrack], int, List[ElementRef]]:
    """Split every element strictly crossing ``split_time`` in two.

    Both halves keep the media reference; only placement and trims change.
    """
    split_count = 0
    right_refs: List[ElementRef] = []
    out: List[TimelineTrack] = []

    for track in tracks:
        elements: List[TimelineElement] = []
        for e in track.elements:
            if should_include is not None and not should_include(track.id, e):
                elements.append(e)
                continue
            if split_time <= e.start_time + epsilon or split_time >= e.end_time - epsilon:
                elements.append(e)
                continue
            left = split_time - e.start_time
            right = e.duration - left
            if left <= epsilon or right <= epsilon:
                elements.append(e)
                continue

            split_count += 1
            right_id = id_factory()
            right_refs.append(ElementRef(track.id, right_id))
            elements.append(TimelineElement(
                id=e.id, type=e.type, name=f"{e.name} (left)",
                start_time=e.start_time, duration=round_time(left),
                trim_start=e.trim_start, trim_end=round_time(e.trim_end + right),
                media_id=e.media_id, content=e.content, is_caption=e.is_caption,
            ))
            elements.append(TimelineElement(
                id=right_id, type=e.type, name=f"{e.name} (right)",
                start_time=round_time(split_time), duration=round_time(right),
                trim_start=round_time(e.trim_start + left), trim_end=e.trim_end,
                media_id=e.media_id, content=e.content, is_caption=e.is_caption,
            ))
        out.append(track.with_elements(elements))
    return out, split_count, right_refs


def split_tracks_at_times(
    tracks: Sequence[TimelineTrack],
    split_times: Iterable[float],
    **kwargs: Any,
) -> Tuple[List[TimelineTrack], int, List[ElementRef]]:
    working = list(tracks)
    total = 0
    refs: List[ElementRef] = []
    for t in split_times:
        working, n, r = split_tracks_at_time(working, t, **kwargs)
        total += n
        refs.extend(r)
    return working, total, refs


def delete_elements_fully_in_range(
    tracks: Sequence[TimelineTrack],
    rng: TimeRange,
    *,
    should_include: Optional[ElementPredicate] = None,
    epsilon: float = EDIT_EPSILON,
) -> Tuple[List[TimelineTrack], int]:
    """Drop elements contained in ``rng``; empty non-main tracks go too."""
    deleted = 0
    out: List[TimelineTrack] = []
    for track in tracks:
        kept: List[TimelineElement] = []
        for e in track.elements:
            if should_include is not None and not should_include(track.id, e):
                kept.append(e)
                continue
            inside = (
                e.start_time >= rng.start - epsilon
                and e.end_time <= rng.end + epsilon
                and e.end_time > e.start_time + epsilon
            )
            if inside:
                deleted += 1
                continue
            kept.append(e)
        if kept or is_main_track(track):
            out.append(track.with_elements(kept))
    return out, deleted


def deleted_duration_before(
    time: float,
    delete_ranges: Sequence[TimeRange],
    epsilon: float = EDIT_EPSILON,
) -> float:
    """Total deleted length before ``time``; ``delete_ranges`` must be sorted."""
    deleted = 0.0
    for r in delete_ranges:
        if time >= r.end - epsilon:
            deleted += r.end - r.start
            continue
        if time <= r.start + epsilon:
            break
        deleted += max(0.0, time - r.start)
        break
    return deleted


def ripple_compress_tracks(
    tracks: Sequence[TimelineTrack],
    delete_ranges: Sequence[TimeRange],
    *,
    should_shift: Optional[ElementPredicate] = None,
    epsilon: float = EDIT_EPSILON,
) -> Tuple[List[TimelineTrack], int]:
    ranges = sorted((r for r in delete_ranges if r.end > r.start), key=lambda r: r.start)
    if not ranges:
        return list(tracks), 0

    moved = 0
    out: List[TimelineTrack] = []
    for track in tracks:
        elements: List[TimelineElement] = []
        for e in track.elements:
            if should_shift is not None and not should_shift(track.id, e):
                elements.append(e)
                continue
            shift = deleted_duration_before(e.start_time, ranges, epsilon)
            if shift <= epsilon:
                elements.append(e)
                continue
            moved += 1
            elements.append(TimelineElement(
                id=e.id, type=e.type, name=e.name,
                start_time=max(0.0, round_time(e.start_time - shift)), duration=e.duration,
                trim_start=e.trim_start, trim_end=e.trim_end,
                media_id=e.media_id, content=e.content, is_caption=e.is_caption,
            ))
        out.append(track.with_elements(elements))
    return out, moved


def _positions(tracks: Sequence[TimelineTrack]) -> Dict[str, float]:
    return {str(ElementRef(t.id, e.id)): e.start_time for t in tracks for e in t.elements}


def build_operation_diff(
    before: Sequence[TimelineTrack],
    after: Sequence[TimelineTrack],
    *,
    keep_ranges: Optional[List[TimeRange]] = None,
    delete_ranges: Optional[List[TimeRange]] = None,
    epsilon: float = EDIT_EPSILON,
) -> TimelineOperationDiff:
    b = _positions(before)
    a = _positions(after)
    before_s = calculate_total_duration(before)
    after_s = calculate_total_duration(after)
    return TimelineOperationDiff(
        added=[k for k in a if k not in b],
        removed=[k for k in b if k not in a],
        moved=[k for k in a if k in b and abs(a[k] - b[k]) > epsilon],
        before_seconds=round_time(before_s),
        after_seconds=round_time(after_s),
        delta_seconds=round_time(after_s - before_s),
        keep_ranges=keep_ranges,
        delete_ranges=delete_ranges,
    )


# -- apply --------------------------------------------------------------------

def compute_tracks_after_deletion(
    tracks: Sequence[TimelineTrack],
    delete_ranges: Sequence[TimeRange],
    *,
    keep_ranges: Optional[List[TimeRange]] = None,
    epsilon: float = EDIT_EPSILON,
    id_factory: Callable[[], str] = _new_id,
) -> EditResult:
    """Split at every delete boundary, drop contained elements, ripple-compress."""
    ranges = sorted((r for r in delete_ranges if r.end > r.start), key=lambda r: r.start)
    split_times = sorted({t for r in ranges for t in (r.start, r.end) if math.isfinite(t)})

    working, split_count, _ = split_tracks_at_times(
        tracks, split_times, epsilon=epsilon, id_factory=id_factory
    )
    deleted_count = 0
    for r in ranges:
        working, n = delete_elements_fully_in_range(working, r, epsilon=epsilon)
        deleted_count += n
    working, moved_count = ripple_compress_tracks(working, ranges, epsilon=epsilon)

    return EditResult(
        tracks=working,
        diff=build_operation_diff(tracks, working, keep_ranges=keep_ranges, delete_ranges=list(ranges)),
        delete_ranges=list(ranges),
        split_count=split_count,
        deleted_count=deleted_count,
        moved_count=moved_count,
    )


def _clipped_deleted_total(delete_ranges: Sequence[TimeRange], total: float) -> float:
    clipped = [
        TimeRange(max(0.0, r.start), min(total, r.end))
        for r in delete_ranges
    ]
    return sum(r.length for r in merge_ranges(clipped, 0.0))


def verify_commit(before_seconds: float, result: EditResult, epsilon: float = EDIT_EPSILON) -> None:
    """Reject results that emptied the timeline or did not shrink it as expected.

    Raises:
        RangeEditError: with a ``TIMELINE_EDIT_*`` error code
    """
    elements = sum(len(t.elements) for t in result.tracks)
    after = calculate_total_duration(result.tracks)
    if elements == 0 or after <= epsilon:
        raise RangeEditError(
            "Edit would leave the timeline empty", error_code=errors.TIMELINE_EDIT_EMPTY
        )
    if not after < before_seconds - epsilon:
        raise RangeEditError(
            f"Edit did not shorten the timeline ({before_seconds:.3f}s -> {after:.3f}s)",
            error_code=errors.TIMELINE_EDIT_NOOP,
        )
    expected = before_seconds - _clipped_deleted_total(result.delete_ranges, before_seconds)
    tolerance = max(MIN_DRIFT_TOLERANCE, DRIFT_TOLERANCE_RATIO * before_seconds)
    if abs(after - expected) > tolerance:
        raise RangeEditError(
            f"Edit drifted: expected {expected:.3f}s, got {after:.3f}s",
            error_code=errors.TIMELINE_EDIT_DRIFT,
        )


def apply_delete_ranges(
    timeline: TimelineCollaborator,
    delete_ranges: Sequence[TimeRange],
    *,
    keep_ranges: Optional[List[TimeRange]] = None,
    id_factory: Callable[[], str] = _new_id,
    expected_fingerprint: Optional[str] = None,
) -> EditResult:
    """Compute, verify and commit a deletion. The timeline is untouched on failure.

    With ``expected_fingerprint`` the edit is rejected as stale when the tracks
    read here no longer match the timeline the ranges were planned against.
    """
    before = timeline.get_tracks()
    if expected_fingerprint is not None and build_timeline_fingerprint(before) != expected_fingerprint:
        raise StaleCacheError(
            "Timeline changed since the plan was made; nothing was cut",
            error_code=errors.HIGHLIGHT_PLAN_STALE,
        )
    before_seconds = calculate_total_duration(before)
    if not [r for r in delete_ranges if r.end - r.start > EDIT_EPSILON]:
        raise RangeEditError("Nothing to delete", error_code=errors.TIMELINE_EDIT_NOOP)

    result = compute_tracks_after_deletion(
        before, delete_ranges, keep_ranges=keep_ranges, id_factory=id_factory
    )
    verify_commit(before_seconds, result)
    timeline.replace_tracks(result.tracks, selection=None)
    log.info(
        f"[cut] Applied {len(result.delete_ranges)} delete ranges: "
        f"{result.diff.before_seconds:.3f}s -> {result.diff.after_seconds:.3f}s "
        f"(split={result.split_count} deleted={result.deleted_count} moved={result.moved_count})"
    )
    return result


def apply_keep_ranges(
    timeline: TimelineCollaborator,
    keep_ranges: Sequence[TimeRange],
    **kwargs: Any,
) -> EditResult:
    """Keep only ``keep_ranges`` (clipped to the timeline) and close the gaps."""
    total = timeline.get_total_duration()
    clipped = [
        TimeRange(max(0.0, r.start), min(total, r.end))
        for r in keep_ranges
    ]
    clipped = [r for r in clipped if r.end > r.start]
    deletes = [
        r for r in complement_ranges(total, clipped)
        if r.end - r.start >= MIN_INTERVAL_SECONDS
    ]
    return apply_delete_ranges(timeline, deletes, keep_ranges=merge_ranges(clipped), **kwargs)
