from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class PipelineOptions:
    thumbnail_interval: float = 2.0
    thumbnail_width: int = 160
    thumbnail_height: int = 90
    columns: int = 10
    rows: int = 10
    max_frames: int = 100

    @classmethod
    def from_settings(cls) -> "PipelineOptions":
        return cls(
            thumbnail_interval=settings.THUMBNAIL_INTERVAL_SECONDS,
            thumbnail_width=settings.THUMBNAIL_WIDTH,
            thumbnail_height=settings.THUMBNAIL_HEIGHT,
            columns=settings.SPRITE_COLUMNS,
            rows=settings.SPRITE_ROWS,
            max_frames=settings.MAX_FRAMES_PER_SHEET,
        )

    def validate(self) -> None:
        if self.thumbnail_interval <= 0:
            raise ImproperlyConfigured("THUMBNAIL_INTERVAL_SECONDS must be positive")
        if self.thumbnail_width <= 0 or self.thumbnail_height <= 0:
            raise ImproperlyConfigured("THUMBNAIL_WIDTH and THUMBNAIL_HEIGHT must be positive")
        if self.columns <= 0 or self.rows <= 0:
            raise ImproperlyConfigured("SPRITE_COLUMNS and SPRITE_ROWS must be positive")
        # single sheet: every kept frame needs a grid cell
        if not 0 < self.max_frames <= self.columns * self.rows:
            raise ImproperlyConfigured(
                f"MAX_FRAMES_PER_SHEET must be between 1 and {self.columns * self.rows} "
                f"for a {self.columns}x{self.rows} grid, got {self.max_frames}"
            )


@dataclass(frozen=True)
class UploadOptions:
    allowed_mime_types: tuple[str, ...]
    max_upload_bytes: int

    @classmethod
    def from_settings(cls) -> "UploadOptions":
        return cls(
            allowed_mime_types=tuple(settings.ALLOWED_MIME_TYPES),
            max_upload_bytes=settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024,
        )


def validate_worker_settings() -> PipelineOptions:
    """
    Checked before the worker connects. Pipeline steps share per-video scratch
    directories and assume one task in flight per process, so prefetch must stay 1.
    """
    if settings.WORKER_PREFETCH_COUNT != 1:
        raise ImproperlyConfigured(
            f"WORKER_PREFETCH_COUNT must be 1 (one unacknowledged task per worker), "
            f"got {settings.WORKER_PREFETCH_COUNT}"
        )
    if settings.WORKER_MAX_DELIVERY_ATTEMPTS < 0:
        raise ImproperlyConfigured("WORKER_MAX_DELIVERY_ATTEMPTS must be >= 0")
    if settings.WORKER_POLL_SECONDS <= 0:
        raise ImproperlyConfigured("WORKER_POLL_SECONDS must be positive")
    heartbeat = settings.CELERY_BROKER_HEARTBEAT
    if heartbeat and settings.WORKER_POLL_SECONDS * 2 > heartbeat:
        raise ImproperlyConfigured(
            f"WORKER_POLL_SECONDS ({settings.WORKER_POLL_SECONDS}) must be at most half of "
            f"CELERY_BROKER_HEARTBEAT ({heartbeat}) so heartbeats go out in time"
        )

    options = PipelineOptions.from_settings()
    options.validate()
    return options
