import uuid
from django.db import models


class Video(models.Model):
    class Status(models.TextChoices):
        UPLOADED = "uploaded"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    original_name = models.CharField(max_length=255)
    file_size = models.BigIntegerField()                 # bytes
    mime_type = models.CharField(max_length=100)
    storage_key = models.CharField(max_length=512)       # uploads/<id>.<ext>
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.UPLOADED)

    # Set on transition to COMPLETED
    video_duration = models.FloatField(null=True, blank=True)   # seconds
    thumbnail_count = models.PositiveIntegerField(null=True, blank=True)
    sprite_sheet_path = models.CharField(max_length=512, null=True, blank=True)
    metadata_path = models.CharField(max_length=512, null=True, blank=True)

    # Set on transition to FAILED
    error_message = models.TextField(null=True, blank=True)

    # Incremented each time a worker picks the task up (redeliveries included)
    attempt_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "videos"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "-created_at"], name="videos_status_created_idx"),
        ]

    def __str__(self):
        return f"{self.id} ({self.status})"
