import uuid
from pathlib import Path

import pytest
from django.apps import apps
from PIL import Image

from videos import records
from videos.conf import PipelineOptions
from videos.media import MediaToolError
from videos.messages import ProcessingTask
from videos.pipeline import SpritePipeline
from videos.s3 import ObjectInfo, ObjectNotFound
from videos.services import Services


class InMemoryObjectStore:
    """Same surface as videos.s3.ObjectStore, backed by a dict."""

    bucket = "videos-test"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str | None] = {}
        self.failures: dict[str, Exception] = {}  # method name -> exception to raise once

    def _maybe_fail(self, op):
        exc = self.failures.pop(op, None)
        if exc is not None:
            raise exc

    def upload_file(self, local_path, key, content_type=None, metadata=None):
        self._maybe_fail("upload_file")
        data = Path(local_path).read_bytes()
        self.objects[key] = data
        self.content_types[key] = content_type
        return len(data)

    def put_bytes(self, key, data, content_type=None):
        self._maybe_fail("put_bytes")
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type

    def download_file(self, key, local_path):
        self._maybe_fail("download_file")
        if key not in self.objects:
            raise ObjectNotFound(key)
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        Path(local_path).write_bytes(self.objects[key])
        return len(self.objects[key])

    def stat(self, key):
        if key not in self.objects:
            raise ObjectNotFound(key)
        return ObjectInfo(key=key, size=len(self.objects[key]), content_type=self.content_types.get(key))

    def iter_object(self, key, start=None, end=None, chunk_size=1024):
        if key not in self.objects:
            raise ObjectNotFound(key)
        data = self.objects[key]
        if start is not None:
            data = data[start:None if end is None else end + 1]
        return iter([data[i:i + chunk_size] for i in range(0, len(data), chunk_size)])

    def read_bytes(self, key):
        return b"".join(self.iter_object(key))

    def delete(self, key):
        self._maybe_fail("delete")
        self.objects.pop(key, None)
        self.content_types.pop(key, None)

    def list_keys(self, prefix):
        return sorted(k for k in self.objects if k.startswith(prefix))


class FakeQueue:
    queue_name = "video_processing_test"

    def __init__(self):
        self.published: list[ProcessingTask] = []
        self.publish_error: Exception | None = None

    def publish(self, task):
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append(task)

    def message_count(self):
        return len(self.published)


class FakeToolkit:
    """
    Stands in for ffprobe/ffmpeg: writes real (tiny) JPEGs so the pipeline's
    file handling and Pillow checks run for real.
    """

    def __init__(self, duration=20.0, frames=None):
        self.duration = duration
        self.frames = frames
        self.tiled: list[list[str]] = []

    def probe_duration(self, input_path):
        assert Path(input_path).exists()
        return self.duration

    def extract_frames(self, input_path, frames_dir, *, interval, width, height):
        count = self.frames if self.frames is not None else int(self.duration // interval)
        for i in range(1, count + 1):
            Image.new("RGB", (width, height), color=(i % 256, 0, 0)).save(Path(frames_dir) / f"frame_{i:04d}.jpg")
        if count == 0:
            raise MediaToolError("No thumbnails were generated")
        return count

    def tile_frames(self, frames_dir, output_path, *, columns, rows, frame_count):
        if frame_count <= 0:
            raise MediaToolError("No frames found to create sprite sheet")
        frames = sorted(p.name for p in Path(frames_dir).glob("frame_*.jpg"))
        self.tiled.append(frames)
        with Image.open(Path(frames_dir) / frames[0]) as first:
            width, height = first.size
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (width * columns, height * rows)).save(output_path)


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def services(store, fake_queue, monkeypatch):
    svc = Services(store=store, queue=fake_queue)
    monkeypatch.setattr(apps.get_app_config("videos"), "services", svc)
    return svc


@pytest.fixture
def options():
    return PipelineOptions()


@pytest.fixture
def toolkit():
    return FakeToolkit()


@pytest.fixture
def pipeline(store, toolkit, options, tmp_path):
    return SpritePipeline(store=store, toolkit=toolkit, options=options, work_root=tmp_path / "work")


@pytest.fixture
def make_task(db, store):
    """Create an 'uploaded' record plus its raw object and return the matching task."""

    def _make(video_id=None, payload=b"\x00" * 5000, name="clip.mp4", mime_type="video/mp4"):
        video_id = str(video_id or uuid.uuid4())
        key = f"uploads/{video_id}.mp4"
        store.objects[key] = payload
        store.content_types[key] = mime_type
        records.create_record(
            video_id=video_id,
            original_name=name,
            file_size=len(payload),
            mime_type=mime_type,
            storage_key=key,
        )
        return ProcessingTask(
            video_id=video_id,
            bucket=store.bucket,
            key=key,
            original_name=name,
            file_size=len(payload),
            mime_type=mime_type,
        )

    return _make
