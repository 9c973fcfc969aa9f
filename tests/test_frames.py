from highlightcut.frames import capture_thumbnail, create_timeline_to_asset_mapper
from highlightcut.timeline import TimelineTrack

from conftest import FakeFrameSource, three_clip_tracks, video_element


def test_mapper_uses_containing_placement() -> None:
    track = TimelineTrack(
        id="main", type="video", is_main=True,
        elements=(video_element("a", 0.0, 10.0, trim_start=30.0), video_element("b", 10.0, 10.0, trim_start=5.0)),
    )
    mapper = create_timeline_to_asset_mapper([track], "vid-1")
    assert mapper(4.0) == 34.0
    assert mapper(15.0) == 10.0
    assert mapper(25.0) == 20.0


def test_mapper_without_placements_is_identity() -> None:
    mapper = create_timeline_to_asset_mapper(three_clip_tracks(), "other")
    assert mapper(12.5) == 12.5
    assert mapper(-1.0) == 0.0


def test_capture_accepts_only_data_image_urls() -> None:
    mapper = create_timeline_to_asset_mapper(three_clip_tracks(), "vid-1")
    source = FakeFrameSource()
    assert capture_thumbnail(source, "vid-1", 45.0, mapper) == "data:image/jpeg;base64,AAAA"
    assert source.calls == [("vid-1", 45.0)]
    assert capture_thumbnail(FakeFrameSource("http://example.com/x.jpg"), "vid-1", 1.0, mapper) is None
    assert capture_thumbnail(FakeFrameSource(None), "vid-1", 1.0, mapper) is None


def test_capture_errors_yield_none() -> None:
    class Broken:
        def capture_frame(self, asset_id, asset_time):
            raise OSError("decoder crashed")

    assert capture_thumbnail(Broken(), "vid-1", 1.0, lambda t: t) is None
