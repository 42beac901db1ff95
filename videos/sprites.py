"""
Sprite sheet metadata: where each thumbnail sits in the grid and which
moment of the video it shows.
"""
import logging
import math

logger = logging.getLogger(__name__)

SPRITE_INDEX = 0  # single sheet per video


def sprite_key(video_id, sprite_index: int = SPRITE_INDEX) -> str:
    return f"sprites/{video_id}/sprite_{sprite_index}.jpg"


def metadata_key(video_id) -> str:
    return f"metadata/{video_id}/metadata.json"


def sprite_url(video_id, sprite_index: int = SPRITE_INDEX) -> str:
    return f"/api/videos/{video_id}/sprite/{sprite_index}"


def frame_position(frame_index: int, width: int, height: int, columns: int) -> tuple[int, int]:
    """Top-left pixel of a frame's cell; frames fill the grid row by row."""
    return (frame_index % columns) * width, (frame_index // columns) * height


def sprite_dimensions(frame_count: int, width: int, height: int, columns: int) -> dict:
    """Size of the grid actually occupied by frame_count frames."""
    actual_rows = math.ceil(frame_count / columns) if frame_count else 0
    return {
        "spriteWidth": width * columns,
        "spriteHeight": height * actual_rows,
        "actualRows": actual_rows,
        "columns": columns,
    }


def build_sprite_metadata(
    *,
    video_id,
    video_duration: float,
    frame_count: int,
    thumbnail_interval: float = 2,
    thumbnail_width: int = 160,
    thumbnail_height: int = 90,
    columns: int = 10,
    rows: int = 10,
) -> dict:
    video_id = str(video_id)
    sprite_width = thumbnail_width * columns
    sprite_height = thumbnail_height * rows

    thumbnails = []
    for i in range(frame_count):
        x, y = frame_position(i, thumbnail_width, thumbnail_height, columns)
        thumbnails.append({
            "index": i,
            "time": i * thumbnail_interval,
            "spriteIndex": SPRITE_INDEX,
            "x": x,
            "y": y,
        })

    metadata = {
        "videoId": video_id,
        "videoDuration": video_duration,
        "thumbnailInterval": thumbnail_interval,
        "totalThumbnails": frame_count,
        "thumbnailWidth": thumbnail_width,
        "thumbnailHeight": thumbnail_height,
        "spriteWidth": sprite_width,
        "spriteHeight": sprite_height,
        "columns": columns,
        "rows": rows,
        "spriteSheets": [
            {
                "index": SPRITE_INDEX,
                "url": sprite_url(video_id),
                "thumbnailCount": frame_count,
                "startTime": 0,
                "endTime": max(frame_count - 1, 0) * thumbnail_interval,
            }
        ],
        "thumbnails": thumbnails,
    }

    logger.info(
        "Metadata generated | video_id=%s frames=%s sprite=%sx%s thumb=%sx%s",
        video_id, frame_count, sprite_width, sprite_height, thumbnail_width, thumbnail_height,
    )
    return metadata


def find_thumbnail_by_time(metadata: dict | None, seconds: float) -> dict | None:
    """Closest thumbnail to a playback position; earliest wins on ties."""
    thumbnails = (metadata or {}).get("thumbnails") or []
    if not thumbnails:
        return None
    return min(thumbnails, key=lambda t: abs(seconds - t["time"]))
