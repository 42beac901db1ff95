"""
Upload ingestion: store the raw file, create the record, enqueue the task,
or leave nothing behind.
"""
import logging
import uuid
from pathlib import Path

from . import records
from .conf import UploadOptions
from .messages import ProcessingTask
from .utils import save_uploaded_file, upload_key

logger = logging.getLogger(__name__)


class UploadRejected(Exception):
    """Client error: nothing was written."""

    def __init__(self, error: str, message: str):
        self.error = error
        self.message = message
        super().__init__(message)


class IngestionFailed(Exception):
    """Server error; partial writes have been compensated."""


class IngestionService:
    def __init__(self, store, queue, options: UploadOptions, staging_dir):
        self.store = store
        self.queue = queue
        self.options = options
        self.staging_dir = Path(staging_dir)

    def validate(self, uploaded) -> None:
        if uploaded is None:
            raise UploadRejected("No file uploaded", 'Please upload a video file in the "video" field.')

        mime_type = getattr(uploaded, "content_type", None) or ""
        if mime_type not in self.options.allowed_mime_types:
            logger.warning(
                "File type rejected | filename=%s mimetype=%s allowed=%s",
                uploaded.name, mime_type, ",".join(self.options.allowed_mime_types),
            )
            raise UploadRejected(
                "Invalid file",
                f"Invalid file type. Allowed types: {', '.join(self.options.allowed_mime_types)}",
            )

        if uploaded.size > self.options.max_upload_bytes:
            logger.warning("File too large | filename=%s size=%s", uploaded.name, uploaded.size)
            raise UploadRejected(
                "File too large",
                f"Maximum file size is {self.options.max_upload_bytes} bytes",
            )

    def ingest(self, uploaded) -> ProcessingTask:
        self.validate(uploaded)

        video_id = str(uuid.uuid4())
        key = upload_key(video_id, uploaded.name)
        logger.info(
            "Processing upload request | video_id=%s filename=%s size=%s mimetype=%s",
            video_id, uploaded.name, uploaded.size, uploaded.content_type,
        )

        try:
            staged = save_uploaded_file(uploaded, self.staging_dir)
        except OSError as e:
            logger.error("Staging upload failed | video_id=%s dir=%s error=%s", video_id, self.staging_dir, e)
            raise IngestionFailed(f"Could not stage upload: {e}") from e

        # (a) raw bytes -> object store; the staging copy goes either way
        try:
            self.store.upload_file(
                staged,
                key,
                content_type=uploaded.content_type,
                metadata={"original-name": uploaded.name.encode("ascii", "replace").decode("ascii")},
            )
        except Exception as e:
            logger.error("Upload to object store failed | video_id=%s key=%s error=%s", video_id, key, e)
            raise IngestionFailed(f"Could not store upload: {e}") from e
        finally:
            self._discard_staged(staged)

        task = ProcessingTask(
            video_id=video_id,
            bucket=self.store.bucket,
            key=key,
            original_name=uploaded.name,
            file_size=uploaded.size,
            mime_type=uploaded.content_type,
        )

        record_created = False
        try:
            # (b) record, then (c) task; the worker must find the record
            records.create_record(
                video_id=video_id,
                original_name=uploaded.name,
                file_size=uploaded.size,
                mime_type=uploaded.content_type,
                storage_key=key,
            )
            record_created = True
            self.queue.publish(task)
        except Exception as e:
            logger.error("Upload request failed | video_id=%s error=%s", video_id, e)
            self._compensate(video_id, key, record_created)
            raise IngestionFailed(str(e)) from e

        logger.info("Upload request completed successfully | video_id=%s key=%s", video_id, key)
        return task

    def _compensate(self, video_id: str, key: str, record_created: bool) -> None:
        if record_created:
            try:
                records.delete_record(video_id)
                logger.info("Rollback: database record deleted | video_id=%s", video_id)
            except Exception as e:
                logger.error("Rollback failed: could not delete database record | video_id=%s error=%s", video_id, e)
        try:
            self.store.delete(key)
            logger.info("Rollback: object deleted | key=%s", key)
        except Exception as e:
            logger.error("Rollback failed: could not delete object | key=%s error=%s", key, e)

    def _discard_staged(self, staged: Path) -> None:
        try:
            staged.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete staged upload | path=%s error=%s", staged, e)
