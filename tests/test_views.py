import json
import uuid

import pytest
from django.apps import apps
from django.conf import settings as django_settings
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient

from videos import records
from videos.models import Video
from videos.queue import QueueClient
from videos.s3 import ObjectStore
from videos.services import Services
from videos.sprites import build_sprite_metadata, metadata_key, sprite_key

pytestmark = pytest.mark.django_db


@pytest.fixture
def client(services, settings, tmp_path):
    settings.UPLOAD_STAGING_DIR = tmp_path / "staging"
    return APIClient()


def _video(store, status=Video.Status.UPLOADED, payload=b"\x01" * 5000):
    video_id = uuid.uuid4()
    key = f"uploads/{video_id}.mp4"
    store.objects[key] = payload
    store.content_types[key] = "video/mp4"
    video = records.create_record(
        video_id=video_id, original_name="clip.mp4", file_size=len(payload),
        mime_type="video/mp4", storage_key=key,
    )
    if status == Video.Status.UPLOADED:
        return video
    records.mark_processing(video_id)
    if status == Video.Status.FAILED:
        records.mark_failed(video_id, "ffprobe exited with code 1")
    elif status == Video.Status.COMPLETED:
        metadata = build_sprite_metadata(video_id=video_id, video_duration=20.0, frame_count=10)
        store.objects[sprite_key(video_id)] = b"\xff\xd8sprite"
        store.objects[metadata_key(video_id)] = json.dumps(metadata).encode()
        records.mark_completed(
            video_id, thumbnail_count=10, video_duration=20.0,
            sprite_sheet_path=sprite_key(video_id), metadata_path=metadata_key(video_id),
        )
    return Video.objects.get(pk=video_id)


def _body(resp) -> bytes:
    return b"".join(resp.streaming_content) if resp.streaming else resp.content


# upload

def test_upload_queues_task(client, fake_queue):
    upload = SimpleUploadedFile("clip.mp4", b"\x00" * 2048, content_type="video/mp4")
    resp = client.post("/upload", {"video": upload}, format="multipart")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["originalName"] == "clip.mp4"
    assert body["data"]["size"] == 2048
    assert Video.objects.get(pk=body["videoId"]).status == Video.Status.UPLOADED
    assert [t.video_id for t in fake_queue.published] == [body["videoId"]]


def test_upload_rejects_wrong_type(client, store, fake_queue):
    upload = SimpleUploadedFile("cat.png", b"\x89PNG", content_type="image/png")
    resp = client.post("/upload", {"video": upload}, format="multipart")

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid file"
    assert store.objects == {}
    assert fake_queue.published == []
    assert Video.objects.count() == 0


def test_upload_without_file(client):
    resp = client.post("/upload", {}, format="multipart")
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


def test_upload_rolls_back_when_queue_is_down(client, store, fake_queue):
    fake_queue.publish_error = ConnectionError("broker down")
    upload = SimpleUploadedFile("clip.mp4", b"\x00" * 2048, content_type="video/mp4")
    resp = client.post("/upload", {"video": upload}, format="multipart")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Upload failed"
    assert Video.objects.count() == 0
    assert store.objects == {}


def test_upload_reports_staging_failure_as_json(client, store, monkeypatch):
    def disk_full(uploaded, staging_dir):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("videos.ingestion.save_uploaded_file", disk_full)
    upload = SimpleUploadedFile("clip.mp4", b"\x00" * 2048, content_type="video/mp4")
    resp = client.post("/upload", {"video": upload}, format="multipart")

    assert resp.status_code == 500
    assert resp["Content-Type"] == "application/json"
    assert resp.json()["error"] == "Upload failed"
    assert "No space left on device" in resp.json()["message"]
    assert Video.objects.count() == 0


# list / status

def test_list_videos(client, store):
    _video(store)
    done = _video(store, Video.Status.COMPLETED)

    resp = client.get("/api/videos")
    assert resp.status_code == 200
    assert resp.json()["count"] == 2

    resp = client.get("/api/videos", {"status": "completed"})
    assert [v["videoId"] for v in resp.json()["videos"]] == [str(done.id)]

    resp = client.get("/api/videos", {"limit": 1})
    assert resp.json()["count"] == 1


def test_list_videos_invalid_status(client):
    resp = client.get("/api/videos", {"status": "exploded"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid status"


def test_status(client, store):
    video = _video(store, Video.Status.FAILED)
    body = client.get(f"/api/videos/{video.id}/status").json()

    assert body["videoId"] == str(video.id)
    assert body["status"] == "failed"
    assert body["error"] == "ffprobe exited with code 1"
    assert body["thumbnailCount"] is None


def test_status_unknown_video(client):
    assert client.get(f"/api/videos/{uuid.uuid4()}/status").status_code == 404
    assert client.get("/api/videos/not-a-uuid/status").status_code == 404


# metadata

def test_metadata_by_status(client, store):
    assert client.get(f"/api/videos/{_video(store).id}/metadata").status_code == 503
    assert client.get(f"/api/videos/{_video(store, Video.Status.PROCESSING).id}/metadata").status_code == 503

    failed = client.get(f"/api/videos/{_video(store, Video.Status.FAILED).id}/metadata")
    assert failed.status_code == 500
    assert failed.json()["message"] == "ffprobe exited with code 1"

    assert client.get(f"/api/videos/{uuid.uuid4()}/metadata").status_code == 404


def test_metadata_of_completed_video(client, store):
    video = _video(store, Video.Status.COMPLETED)
    resp = client.get(f"/api/videos/{video.id}/metadata")

    assert resp.status_code == 200
    assert resp["Cache-Control"] == "public, max-age=3600"
    body = json.loads(_body(resp))
    assert body["totalThumbnails"] == 10
    assert body["spriteSheets"][0]["url"] == f"/api/videos/{video.id}/sprite/0"


def test_metadata_missing_from_storage(client, store):
    video = _video(store, Video.Status.COMPLETED)
    del store.objects[metadata_key(video.id)]
    resp = client.get(f"/api/videos/{video.id}/metadata")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Metadata not found"


# stream

def test_stream_range_request(client, store):
    payload = bytes(range(256)) * 20
    video = _video(store, Video.Status.COMPLETED, payload=payload[:5000])

    resp = client.get(f"/api/videos/{video.id}/stream", HTTP_RANGE="bytes=0-999")

    assert resp.status_code == 206
    assert resp["Content-Range"] == "bytes 0-999/5000"
    assert resp["Content-Length"] == "1000"
    assert resp["Accept-Ranges"] == "bytes"
    assert _body(resp) == payload[:1000]


def test_stream_open_and_suffix_ranges(client, store):
    video = _video(store, Video.Status.COMPLETED)

    resp = client.get(f"/api/videos/{video.id}/stream", HTTP_RANGE="bytes=4000-")
    assert resp["Content-Range"] == "bytes 4000-4999/5000"
    assert len(_body(resp)) == 1000

    resp = client.get(f"/api/videos/{video.id}/stream", HTTP_RANGE="bytes=-100")
    assert resp["Content-Range"] == "bytes 4900-4999/5000"
    assert len(_body(resp)) == 100


def test_stream_full_file(client, store):
    video = _video(store, Video.Status.COMPLETED)
    resp = client.get(f"/api/videos/{video.id}/stream")

    assert resp.status_code == 200
    assert resp["Content-Type"] == "video/mp4"
    assert resp["Content-Length"] == "5000"
    assert len(_body(resp)) == 5000


def test_stream_unsatisfiable_range(client, store):
    video = _video(store, Video.Status.COMPLETED)
    resp = client.get(f"/api/videos/{video.id}/stream", HTTP_RANGE="bytes=6000-7000")

    assert resp.status_code == 416
    assert resp["Content-Range"] == "bytes */5000"


def test_stream_before_completion(client, store):
    video = _video(store, Video.Status.PROCESSING)
    resp = client.get(f"/api/videos/{video.id}/stream")
    assert resp.status_code == 503
    assert resp.json()["status"] == "processing"


# sprite / thumbnail

def test_sprite(client, store):
    video = _video(store, Video.Status.COMPLETED)
    resp = client.get(f"/api/videos/{video.id}/sprite/0")

    assert resp.status_code == 200
    assert resp["Content-Type"] == "image/jpeg"
    assert resp["Cache-Control"] == "public, max-age=86400"
    assert _body(resp) == b"\xff\xd8sprite"

    assert client.get(f"/api/videos/{video.id}/sprite/3").status_code == 404


def test_sprite_not_ready(client, store):
    video = _video(store)
    assert client.get(f"/api/videos/{video.id}/sprite/0").status_code == 503


def test_thumbnail_lookup(client, store):
    video = _video(store, Video.Status.COMPLETED)
    body = client.get(f"/api/videos/{video.id}/thumbnail", {"time": "4.4"}).json()

    assert body["index"] == 2
    assert (body["x"], body["y"]) == (320, 0)
    assert (body["width"], body["height"]) == (160, 90)
    assert body["spriteUrl"] == f"/api/videos/{video.id}/sprite/0"


def test_thumbnail_lookup_requires_time(client, store):
    video = _video(store, Video.Status.COMPLETED)
    assert client.get(f"/api/videos/{video.id}/thumbnail").status_code == 400
    assert client.get(f"/api/videos/{video.id}/thumbnail", {"time": "-1"}).status_code == 400


# service

def test_health(client, fake_queue):
    assert client.get("/health").json()["status"] == "healthy"

    fake_queue.published.append(object())
    body = client.get("/health", {"deep": "1"}).json()
    assert body["queue"] == {"name": fake_queue.queue_name, "messages": 1}


def test_health_with_broker_down(client, fake_queue, monkeypatch):
    def unreachable():
        raise ConnectionError("connection refused")

    monkeypatch.setattr(fake_queue, "message_count", unreachable)
    resp = client.get("/health", {"deep": "1"})
    assert resp.status_code == 503
    assert resp.json()["status"] == "unhealthy"


def test_service_index(client):
    body = client.get("/").json()
    assert body["service"] == "timeline-preview"
    assert body["endpoints"]["upload"] == "POST /upload"


def test_views_share_clients_built_at_startup():
    config = apps.get_app_config("videos")
    assert isinstance(config.services, Services)
    assert isinstance(config.services.store, ObjectStore)
    assert isinstance(config.services.queue, QueueClient)
    assert config.services.queue.queue_name == django_settings.VIDEO_QUEUE_NAME
    assert not config.services.queue.connected
