import os
from pathlib import Path
from uuid import uuid4


def save_uploaded_file(djangofile, staging_dir) -> Path:
    """Stage an upload as <staging_dir>/<uuid>_<name> and return its path."""
    staging_dir = Path(staging_dir)
    staging_dir.mkdir(parents=True, exist_ok=True)
    safe_name = f"{uuid4().hex}_{os.path.basename(djangofile.name)}"
    dest = staging_dir / safe_name
    try:
        with open(dest, "wb") as f:
            for chunk in djangofile.chunks():
                f.write(chunk)
    except OSError:
        dest.unlink(missing_ok=True)
        raise
    return dest


def file_extension(name: str) -> str:
    """'clip.MP4' -> '.mp4', 'clip' -> ''."""
    return Path(os.path.basename(name or "")).suffix.lower()


def upload_key(video_id, original_name: str) -> str:
    return f"uploads/{video_id}{file_extension(original_name)}"
