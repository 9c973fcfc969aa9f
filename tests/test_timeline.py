from dataclasses import replace

import pytest

from highlightcut.timeline import (
    InMemoryTimeline,
    TimelineTrack,
    build_timeline_fingerprint,
    build_transcript_cache_key,
    calculate_total_duration,
    tracks_from_dicts,
    tracks_to_dicts,
)

from conftest import caption_element, three_clip_tracks


def test_total_duration() -> None:
    assert calculate_total_duration(three_clip_tracks()) == 100.0
    assert calculate_total_duration([]) == 0.0


def test_fingerprint_stable_and_sensitive() -> None:
    a = build_timeline_fingerprint(three_clip_tracks())
    assert a == build_timeline_fingerprint(three_clip_tracks())
    assert len(a) == 64

    moved = three_clip_tracks()
    elements = list(moved[0].elements)
    elements[2] = replace(elements[2], start_time=71.0)
    moved[0] = moved[0].with_elements(elements)
    assert build_timeline_fingerprint(moved) != a


def test_fingerprint_tracks_caption_text() -> None:
    one = three_clip_tracks([caption_element("c", 0.0, 5.0, "hello")])
    two = three_clip_tracks([caption_element("c", 0.0, 5.0, "goodbye")])
    assert build_timeline_fingerprint(one) != build_timeline_fingerprint(two)
    assert build_transcript_cache_key("p", one) != build_transcript_cache_key("p", two)
    assert build_transcript_cache_key("p", one).startswith("p:")


def test_dict_round_trip_and_validation() -> None:
    tracks = three_clip_tracks([caption_element("c", 0.0, 5.0, "hello")])
    data = tracks_to_dicts(tracks)
    assert data[1]["elements"][0]["isCaption"] is True
    assert tracks_from_dicts(data) == tracks
    with pytest.raises(ValueError):
        TimelineTrack.from_dict({"id": "x", "type": "hologram"})


def test_in_memory_timeline_snapshot() -> None:
    tl = InMemoryTimeline.from_dict({
        "projectId": "proj",
        "tracks": tracks_to_dicts(three_clip_tracks()),
        "assets": [{"id": "vid-1", "type": "video"}],
    })
    assert tl.project_id == "proj"
    assert tl.get_total_duration() == 100.0
    snap = tl.snapshot()
    assert snap["revision"] == 0
    assert snap["assets"][0]["hasFile"] is True
    tl.replace_tracks([])
    assert tl.revision == 1
    assert tl.get_total_duration() == 0.0
