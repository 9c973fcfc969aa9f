"""Thumbnail capture for visual validation.

Maps a timeline time to a time inside the source asset and asks an external
``FrameSource`` for a data-URL thumbnail.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from .timeline import TimelineTrack

log = logging.getLogger("highlightcut.frames")


class FrameSource(Protocol):
    def capture_frame(self, asset_id: str, asset_time: float) -> Optional[str]:
        """Return a ``data:image/...`` URL or None when no usable frame exists."""
        ...


@dataclass(frozen=True)
class _Placement:
    timeline_start: float
    timeline_end: float
    source_start: float


def create_timeline_to_asset_mapper(
    tracks: Sequence[TimelineTrack],
    asset_id: str,
) -> Callable[[float], float]:
    """Timeline time -> asset time via the video elements using ``asset_id``.

    A time outside every placement uses the placement whose start is nearest.
    Without placements the timeline time is used as is.
    """
    placements: List[_Placement] = sorted(
        (
            _Placement(e.start_time, e.end_time, e.trim_start or 0.0)
            for t in tracks
            for e in t.elements
            if e.type == "video" and e.media_id == asset_id
        ),
        key=lambda p: p.timeline_start,
    )
    if not placements:
        return lambda t: max(0.0, t)

    def _map(timeline_time: float) -> float:
        chosen = next(
            (p for p in placements if p.timeline_start <= timeline_time <= p.timeline_end),
            None,
        )
        if chosen is None:
            chosen = min(placements, key=lambda p: abs(p.timeline_start - timeline_time))
        relative = timeline_time - chosen.timeline_start
        return max(0.0, chosen.source_start + max(0.0, relative))

    return _map


def capture_thumbnail(
    source: FrameSource,
    asset_id: str,
    timeline_time: float,
    mapper: Callable[[float], float],
) -> Optional[str]:
    asset_time = mapper(timeline_time)
    try:
        url = source.capture_frame(asset_id, asset_time)
    except Exception as e:
        log.warning(f"[frames] Capture failed at {asset_time:.2f}s: {e}")
        return None
    if isinstance(url, str) and url.startswith("data:image/"):
        return url
    return None
