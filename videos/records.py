"""
Video record store.

The ingestion side creates (and on rollback deletes) records; every status
write after that comes from the worker and goes through the lifecycle check
under a row lock.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from . import lifecycle
from .models import Video

logger = logging.getLogger(__name__)

Status = Video.Status


class VideoNotFound(Exception):
    def __init__(self, video_id):
        self.video_id = str(video_id)
        super().__init__(f"Video with id {self.video_id} not found")


def create_record(*, video_id, original_name: str, file_size: int, mime_type: str, storage_key: str) -> Video:
    video = Video.objects.create(
        id=video_id,
        original_name=original_name,
        file_size=file_size,
        mime_type=mime_type,
        storage_key=storage_key,
        status=Status.UPLOADED,
    )
    logger.info("Video record created | video_id=%s status=%s", video.id, video.status)
    return video


def get_record(video_id) -> Video:
    try:
        return Video.objects.get(pk=video_id)
    except (Video.DoesNotExist, ValidationError):
        # not a UUID: cannot exist either
        raise VideoNotFound(video_id)


def list_records(status: str | None = None, limit: int = 50) -> list[Video]:
    qs = Video.objects.all()
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by("-created_at")[:limit])


def delete_record(video_id) -> bool:
    deleted, _ = Video.objects.filter(pk=video_id).delete()
    logger.info("Video record deleted | video_id=%s deleted=%s", video_id, bool(deleted))
    return bool(deleted)


def _transition(video_id, target: str, **fields) -> Video:
    with transaction.atomic():
        try:
            video = Video.objects.select_for_update().get(pk=video_id)
        except (Video.DoesNotExist, ValidationError):
            raise VideoNotFound(video_id)

        lifecycle.check_transition(video.status, target)

        video.status = target
        for name, value in fields.items():
            setattr(video, name, value)
        video.save(update_fields=["status", *fields.keys(), "updated_at"])
        if any(hasattr(v, "resolve_expression") for v in fields.values()):
            video.refresh_from_db()
    return video


def mark_processing(video_id) -> Video:
    video = _transition(video_id, Status.PROCESSING, attempt_count=F("attempt_count") + 1, error_message=None)
    logger.info("Video status updated to processing | video_id=%s attempt=%s", video_id, video.attempt_count)
    return video


def mark_completed(
    video_id,
    *,
    thumbnail_count: int,
    video_duration: float,
    sprite_sheet_path: str,
    metadata_path: str,
) -> Video:
    video = _transition(
        video_id,
        Status.COMPLETED,
        thumbnail_count=thumbnail_count,
        video_duration=video_duration,
        sprite_sheet_path=sprite_sheet_path,
        metadata_path=metadata_path,
    )
    logger.info(
        "Video status updated to completed | video_id=%s thumbnails=%s duration=%.2f",
        video_id, thumbnail_count, video_duration,
    )
    return video


def mark_failed(video_id, error_message: str) -> Video:
    video = _transition(video_id, Status.FAILED, error_message=error_message[:4000])
    logger.warning("Video status updated to failed | video_id=%s error=%s", video_id, error_message)
    return video
