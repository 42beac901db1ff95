import pytest

from videos.delivery import RangeNotSatisfiable, parse_byte_range
from videos.workspace import TaskWorkspace


@pytest.mark.parametrize("header,expected", [
    (None, None),
    ("", None),
    ("bytes=0-999", (0, 999)),
    ("bytes=4000-", (4000, 4999)),
    ("bytes=-100", (4900, 4999)),
    ("bytes=-9000", (0, 4999)),
    ("bytes=100-99999", (100, 4999)),
])
def test_parse_byte_range(header, expected):
    assert parse_byte_range(header, 5000) == expected


@pytest.mark.parametrize("header", [
    "bytes=5000-",
    "bytes=10-5",
    "bytes=-0",
    "bytes=-",
    "items=0-10",
    "bytes=0-10,20-30",
])
def test_unsatisfiable_ranges(header):
    with pytest.raises(RangeNotSatisfiable):
        parse_byte_range(header, 5000)


def test_workspace_prepare_and_cleanup(tmp_path):
    ws = TaskWorkspace(tmp_path, "vid-1")
    ws.prepare()
    leftover = ws.frames_dir / "frame_0001.jpg"
    leftover.write_bytes(b"old")

    ws.prepare()
    assert not leftover.exists()
    assert ws.video_path("uploads/vid-1.mkv") == tmp_path / "downloads" / "vid-1" / "source.mkv"
    assert ws.sprite_path() == tmp_path / "sprites" / "vid-1" / "sprite_0.jpg"

    ws.cleanup()
    assert not any(d.exists() for d in ws.directories)
    ws.cleanup()
