import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class TaskWorkspace:
    """
    Scratch directories of one video: <root>/downloads/<id>, <root>/frames/<id>,
    <root>/sprites/<id>. prepare() wipes leftovers of an earlier attempt.
    """

    def __init__(self, root, video_id):
        root = Path(root)
        self.video_id = str(video_id)
        self.download_dir = root / "downloads" / self.video_id
        self.frames_dir = root / "frames" / self.video_id
        self.sprite_dir = root / "sprites" / self.video_id

    @property
    def directories(self) -> tuple[Path, Path, Path]:
        return self.download_dir, self.frames_dir, self.sprite_dir

    def prepare(self) -> None:
        for d in self.directories:
            if d.exists():
                shutil.rmtree(d)
            d.mkdir(parents=True)

    def video_path(self, source_key: str) -> Path:
        return self.download_dir / f"source{Path(source_key).suffix}"

    def sprite_path(self, sprite_index: int = 0) -> Path:
        return self.sprite_dir / f"sprite_{sprite_index}.jpg"

    def cleanup(self) -> None:
        for d in self.directories:
            try:
                shutil.rmtree(d, ignore_errors=False)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to delete directory | video_id=%s path=%s error=%s", self.video_id, d, e)
