import json
import logging
from datetime import datetime, timezone

from django.apps import apps
from django.conf import settings
from django.http import HttpResponse, StreamingHttpResponse
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import records
from .conf import UploadOptions
from .delivery import ArtifactNotReady, RangeNotSatisfiable, parse_byte_range, require_completed
from .ingestion import IngestionFailed, IngestionService, UploadRejected
from .models import Video
from .records import VideoNotFound
from .s3 import ObjectNotFound
from .serializers import (
    ThumbnailLookupQuerySerializer,
    VideoListQuerySerializer,
    VideoSerializer,
    VideoUploadSerializer,
)
from .services import Services
from .sprites import find_thumbnail_by_time, metadata_key, sprite_key, sprite_url

logger = logging.getLogger(__name__)

SERVICE_NAME = "timeline-preview"
SERVICE_VERSION = "1.0.0"

METADATA_CACHE_CONTROL = "public, max-age=3600"   # 1 hour
SPRITE_CACHE_CONTROL = "public, max-age=86400"    # 24 hours


def _error(code: int, error: str, message: str, **extra) -> Response:
    return Response({"error": error, "message": message, **extra}, status=code)


def _first_error(errors) -> str:
    for field, messages in errors.items():
        if messages:
            return f"{field}: {messages[0]}"
    return "Invalid request"


def _video_not_found(video_id) -> Response:
    return _error(status.HTTP_404_NOT_FOUND, "Video not found", f"No video found with ID: {video_id}")


def _not_ready(e: ArtifactNotReady, message: str) -> Response:
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Video not ready", message, status=e.status)


class PublicAPIView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    @property
    def services(self) -> Services:
        return apps.get_app_config("videos").services


class UploadVideoView(PublicAPIView):
    """
    Accepts a multipart upload (field "video"), stores it, creates the record
    and queues the sprite task.
    """

    def post(self, request):
        ser = VideoUploadSerializer(data=request.data)
        if not ser.is_valid():
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid file", _first_error(ser.errors))

        service = IngestionService(
            self.services.store,
            self.services.queue,
            UploadOptions.from_settings(),
            settings.UPLOAD_STAGING_DIR,
        )
        try:
            task = service.ingest(ser.validated_data.get("video"))
        except UploadRejected as e:
            return _error(status.HTTP_400_BAD_REQUEST, e.error, e.message)
        except IngestionFailed as e:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed", str(e))

        return Response({
            "success": True,
            "videoId": task.video_id,
            "message": "File uploaded and processing task queued successfully.",
            "data": {
                "originalName": task.original_name,
                "size": task.file_size,
                "uploadedAt": task.timestamp,
            },
        }, status=status.HTTP_200_OK)


class VideoListView(PublicAPIView):
    def get(self, request):
        ser = VideoListQuerySerializer(data=request.query_params)
        if not ser.is_valid():
            if "status" in ser.errors:
                return _error(
                    status.HTTP_400_BAD_REQUEST,
                    "Invalid status",
                    f"Status must be one of: {', '.join(Video.Status.values)}",
                )
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid query", _first_error(ser.errors))

        videos = records.list_records(ser.validated_data.get("status"), ser.validated_data["limit"])
        logger.info("Videos retrieved | count=%s status=%s", len(videos), ser.validated_data.get("status"))
        return Response({"count": len(videos), "videos": VideoSerializer(videos, many=True).data})


class VideoStatusView(PublicAPIView):
    def get(self, request, video_id):
        try:
            video = records.get_record(video_id)
        except VideoNotFound:
            return _video_not_found(video_id)
        return Response(VideoSerializer(video).data)


class VideoMetadataView(PublicAPIView):
    def get(self, request, video_id):
        try:
            video = records.get_record(video_id)
            require_completed(video)
        except VideoNotFound:
            return _video_not_found(video_id)
        except ArtifactNotReady as e:
            if e.status == Video.Status.FAILED:
                return _error(
                    status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "Processing failed",
                    video.error_message or "Video processing failed",
                    status=e.status,
                )
            return _not_ready(e, "Video is still being processed. Please try again later.")

        key = video.metadata_path or metadata_key(video.id)
        try:
            data = self.services.store.read_bytes(key)
        except ObjectNotFound:
            logger.warning("Metadata missing from storage | video_id=%s key=%s", video.id, key)
            return _error(status.HTTP_404_NOT_FOUND, "Metadata not found", "Metadata file not found in storage")

        resp = HttpResponse(data, content_type="application/json")
        resp["Cache-Control"] = METADATA_CACHE_CONTROL
        return resp


class VideoStreamView(PublicAPIView):
    """Raw upload, with single byte-range support for seeking."""

    def get(self, request, video_id):
        try:
            video = require_completed(records.get_record(video_id))
        except VideoNotFound:
            return _video_not_found(video_id)
        except ArtifactNotReady as e:
            return _not_ready(e, "Video is not available for playback yet")

        store = self.services.store
        try:
            info = store.stat(video.storage_key)
        except ObjectNotFound:
            return _error(status.HTTP_404_NOT_FOUND, "Video not found", "Video file not found in storage")

        size = info.size
        content_type = video.mime_type or info.content_type or "video/mp4"
        try:
            byte_range = parse_byte_range(request.headers.get("Range"), size)
        except RangeNotSatisfiable:
            resp = HttpResponse(status=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE)
            resp["Content-Range"] = f"bytes */{size}"
            return resp

        try:
            if byte_range:
                start, end = byte_range
                logger.info("Handling range request | video_id=%s start=%s end=%s size=%s", video.id, start, end, size)
                resp = StreamingHttpResponse(
                    store.iter_object(video.storage_key, start, end),
                    status=status.HTTP_206_PARTIAL_CONTENT,
                    content_type=content_type,
                )
                resp["Content-Range"] = f"bytes {start}-{end}/{size}"
                resp["Content-Length"] = str(end - start + 1)
            else:
                logger.info("Handling full file request | video_id=%s size=%s", video.id, size)
                resp = StreamingHttpResponse(store.iter_object(video.storage_key), content_type=content_type)
                resp["Content-Length"] = str(size)
        except ObjectNotFound:
            return _error(status.HTTP_404_NOT_FOUND, "Video not found", "Video file not found in storage")

        resp["Accept-Ranges"] = "bytes"
        return resp


class VideoSpriteView(PublicAPIView):
    def get(self, request, video_id, index):
        try:
            video = require_completed(records.get_record(video_id))
        except VideoNotFound:
            return _video_not_found(video_id)
        except ArtifactNotReady as e:
            return _not_ready(e, "Sprite sheet not yet available")

        key = sprite_key(video.id, index)
        try:
            chunks = self.services.store.iter_object(key)
        except ObjectNotFound:
            return _error(status.HTTP_404_NOT_FOUND, "Sprite not found", f"Sprite {index} not found in storage")

        resp = StreamingHttpResponse(chunks, content_type="image/jpeg")
        resp["Cache-Control"] = SPRITE_CACHE_CONTROL
        return resp


class ThumbnailLookupView(PublicAPIView):
    """The thumbnail closest to ?time=<seconds>, with its sprite URL and offsets."""

    def get(self, request, video_id):
        query = ThumbnailLookupQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid query", _first_error(query.errors))

        try:
            video = require_completed(records.get_record(video_id))
        except VideoNotFound:
            return _video_not_found(video_id)
        except ArtifactNotReady as e:
            return _not_ready(e, "Thumbnails not yet available")

        try:
            metadata = json.loads(self.services.store.read_bytes(video.metadata_path or metadata_key(video.id)))
        except ObjectNotFound:
            return _error(status.HTTP_404_NOT_FOUND, "Metadata not found", "Metadata file not found in storage")

        thumbnail = find_thumbnail_by_time(metadata, query.validated_data["time"])
        if thumbnail is None:
            return _error(status.HTTP_404_NOT_FOUND, "Thumbnail not found", "Video has no thumbnails")

        return Response({
            **thumbnail,
            "width": metadata["thumbnailWidth"],
            "height": metadata["thumbnailHeight"],
            "spriteUrl": sprite_url(video.id, thumbnail["spriteIndex"]),
        })


class HealthView(PublicAPIView):
    """Liveness; ?deep=1 also checks the broker queue."""

    def get(self, request):
        body = {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if request.query_params.get("deep") not in ("1", "true", "yes"):
            return Response(body)

        queue = self.services.queue
        try:
            body["queue"] = {"name": queue.queue_name, "messages": queue.message_count()}
        except Exception as e:
            logger.error("Health check failed: broker unreachable | error=%s", e)
            body.update(status="unhealthy", error=str(e))
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(body)


class ServiceIndexView(PublicAPIView):
    def get(self, request):
        return Response({
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "upload": "POST /upload",
                "videos": "GET /api/videos",
                "videoStatus": "GET /api/videos/:videoId/status",
                "videoMetadata": "GET /api/videos/:videoId/metadata",
                "videoStream": "GET /api/videos/:videoId/stream",
                "videoSprite": "GET /api/videos/:videoId/sprite/:index",
                "videoThumbnail": "GET /api/videos/:videoId/thumbnail?time=:seconds",
                "health": "GET /health",
            },
        })
