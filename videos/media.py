import logging
import math
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%04d.jpg"
FRAME_GLOB = "frame_*.jpg"


class MediaToolError(RuntimeError):
    pass


def trim_tail(text: str | None, limit: int = 500) -> str:
    text = (text or "").strip()
    return text[-limit:]


def list_frames(frames_dir) -> list[Path]:
    """Extracted frames in index order (frame_0001.jpg, frame_0002.jpg, ...)."""
    return sorted(Path(frames_dir).glob(FRAME_GLOB))


class FFmpegToolkit:
    """Runs ffprobe/ffmpeg as subprocesses."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe", timeout: int = 600):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "FFmpegToolkit":
        from django.conf import settings

        return cls(
            ffmpeg_bin=settings.FFMPEG_BIN,
            ffprobe_bin=settings.FFPROBE_BIN,
            timeout=settings.MEDIA_TOOL_TIMEOUT_SECONDS,
        )

    def _run(self, cmd: list[str], what: str) -> subprocess.CompletedProcess:
        logger.debug("Running %s: %s", what, " ".join(cmd))
        try:
            p = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise MediaToolError(f"{what} timeout ({self.timeout}s)") from e
        except FileNotFoundError as e:
            raise MediaToolError(f"{what} executable not found: {cmd[0]}") from e

        if p.returncode != 0:
            logger.error("%s failed | exit=%s stderr=%s", what, p.returncode, trim_tail(p.stderr))
            raise MediaToolError(f"{what} exited with code {p.returncode}: {trim_tail(p.stderr, 200)}")
        return p

    def probe_duration(self, input_path) -> float:
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(input_path),
        ]
        p = self._run(cmd, "ffprobe")

        raw = (p.stdout or "").strip()
        try:
            duration = float(raw)
        except ValueError:
            raise MediaToolError(f"Invalid duration returned by ffprobe: {raw!r}")
        if not math.isfinite(duration) or duration < 0:
            raise MediaToolError(f"Invalid duration returned by ffprobe: {raw!r}")

        logger.info("Video duration detected | duration=%.2f path=%s", duration, input_path)
        return duration

    def extract_frames(self, input_path, frames_dir, *, interval: float, width: int, height: int) -> int:
        """
        One frame every `interval` seconds, scaled to width x height, written as
        frames_dir/frame_%04d.jpg. Returns the number of frames produced.
        """
        frames_dir = Path(frames_dir)
        cmd = [
            self.ffmpeg_bin,
            "-y",
            "-i", str(input_path),
            "-vf", f"fps=1/{interval:g},scale={width}:{height}",
            "-q:v", "2",  # JPEG quality
            str(frames_dir / FRAME_PATTERN),
        ]
        self._run(cmd, "ffmpeg frame extraction")

        count = len(list_frames(frames_dir))
        if count == 0:
            raise MediaToolError("No thumbnails were generated")
        logger.info("Frames extracted | count=%s dir=%s", count, frames_dir)
        return count

    def tile_frames(self, frames_dir, output_path, *, columns: int, rows: int, frame_count: int) -> None:
        """Tile frame_0001..frame_{frame_count} into one columns x rows image."""
        if frame_count <= 0:
            raise MediaToolError("No frames found to create sprite sheet")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.ffmpeg_bin,
            "-y",
            "-start_number", "1",
            "-i", str(Path(frames_dir) / FRAME_PATTERN),
            "-frames:v", "1",
            "-vf", f"tile={columns}x{rows}",
            "-q:v", "2",
            str(output_path),
        ]
        self._run(cmd, "ffmpeg sprite tiling")

        if not output_path.exists():
            raise MediaToolError(f"Sprite sheet was not written: {output_path}")
        logger.info("Sprite sheet created | frames=%s grid=%sx%s output=%s", frame_count, columns, rows, output_path)
