"""
Read path for finished videos: readiness checks and byte-range parsing.
"""
import re

from .models import Video

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class ArtifactNotReady(Exception):
    def __init__(self, video: Video):
        self.video = video
        self.status = video.status
        super().__init__(f"Video {video.id} is {video.status}")


class RangeNotSatisfiable(Exception):
    def __init__(self, header: str, size: int):
        self.header = header
        self.size = size
        super().__init__(f"Range {header!r} not satisfiable for {size} bytes")


def require_completed(video: Video) -> Video:
    if video.status != Video.Status.COMPLETED:
        raise ArtifactNotReady(video)
    return video


def parse_byte_range(header: str | None, size: int) -> tuple[int, int] | None:
    """
    Parse a single-range Range header into inclusive (start, end) offsets.
    None means no range was requested.
    """
    if not header:
        return None

    m = _RANGE_RE.match(header.strip())
    if not m:
        raise RangeNotSatisfiable(header, size)

    first, last = m.groups()
    if first == "" and last == "":
        raise RangeNotSatisfiable(header, size)

    if first == "":
        # suffix range: last N bytes
        length = int(last)
        if length == 0 or size == 0:
            raise RangeNotSatisfiable(header, size)
        return max(size - length, 0), size - 1

    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise RangeNotSatisfiable(header, size)
    return start, min(end, size - 1)
