"""Timeline model, fingerprints and the collaborator protocol.

The edit engine mutates a timeline only through ``TimelineCollaborator``.
``InMemoryTimeline`` is the bundled implementation used by the studio API,
the CLI and the tests.
"""
from __future__ import annotations

import copy
import hashlib
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

TRACK_TYPES = ("video", "text", "audio", "sticker")
ELEMENT_TYPES = ("video", "image", "text", "audio", "sticker")


@dataclass(frozen=True)
class TimelineElement:
    id: str
    type: str
    start_time: float
    duration: float
    name: str = ""
    trim_start: float = 0.0
    trim_end: float = 0.0
    media_id: Optional[str] = None
    content: Optional[str] = None
    is_caption: bool = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "startTime": self.start_time,
            "duration": self.duration,
            "trimStart": self.trim_start,
            "trimEnd": self.trim_end,
        }
        if self.media_id is not None:
            d["mediaId"] = self.media_id
        if self.content is not None:
            d["content"] = self.content
        if self.is_caption:
            d["isCaption"] = True
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimelineElement":
        etype = str(d.get("type", "video"))
        if etype not in ELEMENT_TYPES:
            raise ValueError(f"Unknown element type: {etype}")
        return cls(
            id=str(d["id"]),
            type=etype,
            name=str(d.get("name", "")),
            start_time=float(d.get("startTime", 0.0)),
            duration=float(d.get("duration", 0.0)),
            trim_start=float(d.get("trimStart", 0.0) or 0.0),
            trim_end=float(d.get("trimEnd", 0.0) or 0.0),
            media_id=d.get("mediaId"),
            content=d.get("content"),
            is_caption=bool(d.get("isCaption", False)),
        )


@dataclass(frozen=True)
class TimelineTrack:
    id: str
    type: str
    elements: Tuple[TimelineElement, ...] = ()
    name: str = ""
    is_main: bool = False

    def with_elements(self, elements: Sequence[TimelineElement]) -> "TimelineTrack":
        return replace(self, elements=tuple(elements))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "isMain": self.is_main,
            "elements": [e.to_dict() for e in self.elements],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimelineTrack":
        ttype = str(d.get("type", "video"))
        if ttype not in TRACK_TYPES:
            raise ValueError(f"Unknown track type: {ttype}")
        return cls(
            id=str(d["id"]),
            type=ttype,
            name=str(d.get("name", "")),
            is_main=bool(d.get("isMain", False)),
            elements=tuple(TimelineElement.from_dict(e) for e in d.get("elements", []) or []),
        )


@dataclass(frozen=True)
class MediaAsset:
    id: str
    type: str
    name: str = ""
    has_file: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "name": self.name, "hasFile": self.has_file}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MediaAsset":
        return cls(
            id=str(d["id"]),
            type=str(d.get("type", "video")),
            name=str(d.get("name", "")),
            has_file=bool(d.get("hasFile", True)),
        )


@dataclass(frozen=True)
class ElementRef:
    track_id: str
    element_id: str

    def __str__(self) -> str:
        return f"{self.track_id}:{self.element_id}"


def is_main_track(track: TimelineTrack) -> bool:
    return track.type == "video" and track.is_main


def is_caption_element(element: TimelineElement) -> bool:
    return element.type == "text" and element.is_caption and isinstance(element.content, str)


def calculate_total_duration(tracks: Sequence[TimelineTrack]) -> float:
    ends = [e.end_time for t in tracks for e in t.elements]
    return max(ends) if ends else 0.0


def tracks_to_dicts(tracks: Sequence[TimelineTrack]) -> List[Dict[str, Any]]:
    return [t.to_dict() for t in tracks]


def tracks_from_dicts(data: Sequence[Dict[str, Any]]) -> List[TimelineTrack]:
    return [TimelineTrack.from_dict(t) for t in data]


def timeline_descriptor(tracks: Sequence[TimelineTrack]) -> str:
    """Deterministic descriptor over every element's placement and source."""
    parts = []
    for track in tracks:
        elements = "|".join(
            ":".join([
                e.id,
                e.type,
                f"{e.start_time:.3f}",
                f"{e.duration:.3f}",
                f"{e.trim_start:.3f}",
                f"{e.trim_end:.3f}",
                e.media_id or "",
                e.content if e.type == "text" and isinstance(e.content, str) else "",
            ])
            for e in track.elements
        )
        parts.append(f"{track.id}:{track.type}:{elements}")
    return "||".join(parts)


def build_timeline_fingerprint(tracks: Sequence[TimelineTrack]) -> str:
    return hashlib.sha256(timeline_descriptor(tracks).encode("utf-8")).hexdigest()


def build_transcript_cache_key(project_id: str, tracks: Sequence[TimelineTrack]) -> str:
    """Key for the transcript context cache; caption edits change it."""
    parts = []
    for track in tracks:
        elements = "|".join(
            f"{e.id}:{e.start_time:.2f}:{e.duration:.2f}:{e.content}"
            if is_caption_element(e)
            else f"{e.id}:{e.type}:{e.start_time:.2f}:{e.duration:.2f}"
            for e in track.elements
        )
        parts.append(f"{track.id}:{track.type}:{elements}")
    digest = hashlib.sha256("||".join(parts).encode("utf-8")).hexdigest()[:32]
    return f"{project_id}:{digest}"


class TimelineCollaborator(Protocol):
    project_id: str

    def get_tracks(self) -> List[TimelineTrack]: ...

    def replace_tracks(self, tracks: Sequence[TimelineTrack], selection: Optional[Sequence[ElementRef]] = None) -> None: ...

    def get_assets(self) -> List[MediaAsset]: ...

    def get_selected_elements(self) -> List[ElementRef]: ...

    def get_total_duration(self) -> float: ...


class InMemoryTimeline:
    """Thread-safe timeline held in memory."""

    def __init__(
        self,
        tracks: Optional[Sequence[TimelineTrack]] = None,
        assets: Optional[Sequence[MediaAsset]] = None,
        *,
        project_id: str = "default",
    ):
        self.project_id = project_id
        self._lock = threading.Lock()
        self._tracks: List[TimelineTrack] = list(tracks or [])
        self._assets: List[MediaAsset] = list(assets or [])
        self._selection: List[ElementRef] = []
        self.revision = 0

    def get_tracks(self) -> List[TimelineTrack]:
        with self._lock:
            return list(self._tracks)

    def replace_tracks(self, tracks: Sequence[TimelineTrack], selection: Optional[Sequence[ElementRef]] = None) -> None:
        with self._lock:
            self._tracks = list(tracks)
            self._selection = list(selection or [])
            self.revision += 1

    def get_assets(self) -> List[MediaAsset]:
        with self._lock:
            return list(self._assets)

    def set_assets(self, assets: Sequence[MediaAsset]) -> None:
        with self._lock:
            self._assets = list(assets)

    def get_selected_elements(self) -> List[ElementRef]:
        with self._lock:
            return list(self._selection)

    def set_selected_elements(self, refs: Sequence[ElementRef]) -> None:
        with self._lock:
            self._selection = list(refs)

    def get_total_duration(self) -> float:
        return calculate_total_duration(self.get_tracks())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "projectId": self.project_id,
                "revision": self.revision,
                "tracks": tracks_to_dicts(self._tracks),
                "assets": [a.to_dict() for a in self._assets],
            }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InMemoryTimeline":
        return cls(
            tracks_from_dicts(copy.deepcopy(d.get("tracks", []) or [])),
            [MediaAsset.from_dict(a) for a in d.get("assets", []) or []],
            project_id=str(d.get("projectId", "default")),
        )
