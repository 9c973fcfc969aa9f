"""Shared fakes for the highlight pipeline tests."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import pytest

from highlightcut.ai.llm_client import ChatResponse
from highlightcut.timeline import InMemoryTimeline, MediaAsset, TimelineElement, TimelineTrack


class FakeProvider:
    """Chat provider returning canned responses, in order or via a callable."""

    def __init__(self, responses: Any = None, *, available: bool = True):
        self.responses = responses if responses is not None else []
        self.available = available
        self.calls: List[List[Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def chat(self, messages, *, tools=None, temperature=None) -> ChatResponse:
        with self._lock:
            self.calls.append(messages)
            n = len(self.calls)
        if callable(self.responses):
            out = self.responses(messages)
        else:
            out = self.responses[min(n - 1, len(self.responses) - 1)] if self.responses else ""
        if isinstance(out, Exception):
            raise out
        return ChatResponse(content=out)


class FakeFrameSource:
    def __init__(self, url: Optional[str] = "data:image/jpeg;base64,AAAA"):
        self.url = url
        self.calls: List[tuple] = []

    def capture_frame(self, asset_id: str, asset_time: float) -> Optional[str]:
        self.calls.append((asset_id, asset_time))
        return self.url


def video_element(eid: str, start: float, duration: float, *, trim_start: float = 0.0, media_id: str = "vid-1") -> TimelineElement:
    return TimelineElement(
        id=eid, type="video", name=eid,
        start_time=start, duration=duration,
        trim_start=trim_start, media_id=media_id,
    )


def caption_element(eid: str, start: float, end: float, text: str) -> TimelineElement:
    return TimelineElement(
        id=eid, type="text", name=eid,
        start_time=start, duration=end - start,
        content=text, is_caption=True,
    )


def three_clip_tracks(captions: Optional[List[TimelineElement]] = None) -> List[TimelineTrack]:
    tracks = [
        TimelineTrack(
            id="main",
            type="video",
            is_main=True,
            elements=(
                video_element("a", 0.0, 40.0),
                video_element("b", 40.0, 30.0, trim_start=40.0),
                video_element("c", 70.0, 30.0, trim_start=70.0),
            ),
        )
    ]
    if captions:
        tracks.append(TimelineTrack(id="subs", type="text", elements=tuple(captions)))
    return tracks


def contiguous_captions() -> List[TimelineElement]:
    """Ten 10-second captions covering 0-100s."""
    lines = [
        "Welcome back everyone to the channel today.",
        "This is the most important secret you must know!",
        "Um so like you know we basically started here.",
        "The key mistake people make is never testing.",
        "Here is the solution that always works great!",
        "Then we went to lunch and talked about nothing.",
        "Amazing results came from the second attempt!",
        "Well actually it was right there all along.",
        "Never skip the final check before you ship.",
        "Thanks for watching and see you next time.",
    ]
    return [caption_element(f"cap{i}", i * 10.0, (i + 1) * 10.0, text) for i, text in enumerate(lines)]


@pytest.fixture
def timeline() -> InMemoryTimeline:
    return InMemoryTimeline(
        three_clip_tracks(contiguous_captions()),
        [MediaAsset(id="vid-1", type="video", name="source.mp4")],
        project_id="proj-1",
    )
