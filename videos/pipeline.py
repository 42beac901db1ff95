"""
Sprite extraction pipeline run by the worker for one ProcessingTask.

download -> probe -> extract frames -> tile sprite -> upload sprite ->
build + upload metadata -> mark completed. Every artifact goes to a
deterministic key, so a redelivered task simply redoes the work.
"""
from dataclasses import dataclass
import json
import logging
import time
from pathlib import Path

from PIL import Image

from . import records
from .conf import PipelineOptions
from .media import list_frames
from .messages import ProcessingTask
from .sprites import build_sprite_metadata, metadata_key, sprite_dimensions, sprite_key
from .workspace import TaskWorkspace

logger = logging.getLogger(__name__)


class PipelineFailed(Exception):
    def __init__(self, video_id: str, message: str, attempt: int = 0):
        self.video_id = video_id
        self.attempt = attempt
        super().__init__(f"Processing failed for video {video_id}: {message}")


@dataclass(frozen=True)
class PipelineResult:
    video_id: str
    video_duration: float
    thumbnail_count: int
    frames_extracted: int
    sprite_sheet_path: str
    metadata_path: str


def _error_message(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class SpritePipeline:
    def __init__(self, store, toolkit, options: PipelineOptions, work_root):
        self.store = store
        self.toolkit = toolkit
        self.options = options
        self.work_root = Path(work_root)

    def run(self, task: ProcessingTask) -> PipelineResult:
        video_id = task.video_id
        started = time.monotonic()

        # 1. Claim. Errors here (unknown id, already completed, DB down) belong to the caller.
        video = records.mark_processing(video_id)
        attempt = video.attempt_count
        logger.info("Starting video processing | video_id=%s key=%s attempt=%s", video_id, task.key, attempt)

        workspace = TaskWorkspace(self.work_root, video_id)
        try:
            result = self._execute(task, workspace)
        except Exception as e:
            message = _error_message(e)
            logger.error("Video processing failed | video_id=%s attempt=%s error=%s", video_id, attempt, message)
            try:
                records.mark_failed(video_id, message)
            except Exception:
                logger.exception("Could not record failure | video_id=%s", video_id)
            raise PipelineFailed(video_id, message, attempt=attempt) from e
        finally:
            workspace.cleanup()

        logger.info(
            "Video processing completed | video_id=%s thumbnails=%s elapsed=%.1fs",
            video_id, result.thumbnail_count, time.monotonic() - started,
        )
        return result

    def _execute(self, task: ProcessingTask, workspace: TaskWorkspace) -> PipelineResult:
        opts = self.options
        video_id = task.video_id

        # 2. Scratch space
        workspace.prepare()

        # 3. Download
        video_path = workspace.video_path(task.key)
        size = self.store.download_file(task.key, video_path)
        if size != task.file_size:
            logger.warning(
                "Downloaded size differs from upload | video_id=%s expected=%s actual=%s",
                video_id, task.file_size, size,
            )

        # 4. Probe
        duration = self.toolkit.probe_duration(video_path)

        # 5. Extract
        extracted = self.toolkit.extract_frames(
            video_path,
            workspace.frames_dir,
            interval=opts.thumbnail_interval,
            width=opts.thumbnail_width,
            height=opts.thumbnail_height,
        )

        # 6. Cap + tile
        frame_count = self._cap_frames(workspace.frames_dir)
        sprite_path = workspace.sprite_path()
        self.toolkit.tile_frames(
            workspace.frames_dir,
            sprite_path,
            columns=opts.columns,
            rows=opts.rows,
            frame_count=frame_count,
        )
        self._log_sprite_size(video_id, sprite_path, frame_count)

        # 7. Sprite upload
        sprite_sheet_path = sprite_key(video_id)
        self.store.upload_file(sprite_path, sprite_sheet_path, content_type="image/jpeg")

        # 8. Metadata
        metadata = build_sprite_metadata(
            video_id=video_id,
            video_duration=duration,
            frame_count=frame_count,
            thumbnail_interval=opts.thumbnail_interval,
            thumbnail_width=opts.thumbnail_width,
            thumbnail_height=opts.thumbnail_height,
            columns=opts.columns,
            rows=opts.rows,
        )

        # 9. Metadata upload
        metadata_path = metadata_key(video_id)
        self.store.put_bytes(
            metadata_path,
            json.dumps(metadata, indent=2).encode("utf-8"),
            content_type="application/json",
        )

        # 10. Complete
        records.mark_completed(
            video_id,
            thumbnail_count=frame_count,
            video_duration=duration,
            sprite_sheet_path=sprite_sheet_path,
            metadata_path=metadata_path,
        )

        return PipelineResult(
            video_id=video_id,
            video_duration=duration,
            thumbnail_count=frame_count,
            frames_extracted=extracted,
            sprite_sheet_path=sprite_sheet_path,
            metadata_path=metadata_path,
        )

    def _cap_frames(self, frames_dir) -> int:
        """Drop frames beyond max_frames so the tiler only sees the kept prefix."""
        frames = list_frames(frames_dir)
        kept, dropped = frames[: self.options.max_frames], frames[self.options.max_frames:]
        for frame in dropped:
            frame.unlink()
        if dropped:
            logger.info("Frames capped | kept=%s dropped=%s", len(kept), len(dropped))
        return len(kept)

    def _log_sprite_size(self, video_id: str, sprite_path: Path, frame_count: int) -> None:
        opts = self.options
        with Image.open(sprite_path) as img:
            width, height = img.size
        used = sprite_dimensions(frame_count, opts.thumbnail_width, opts.thumbnail_height, opts.columns)
        expected = (opts.thumbnail_width * opts.columns, opts.thumbnail_height * opts.rows)
        if (width, height) != expected:
            logger.warning(
                "Sprite size differs from grid | video_id=%s actual=%sx%s expected=%sx%s",
                video_id, width, height, *expected,
            )
        logger.info(
            "Sprite sheet ready | video_id=%s size=%sx%s rows_used=%s/%s",
            video_id, width, height, used["actualRows"], opts.rows,
        )
