from dataclasses import dataclass, field
from datetime import datetime, timezone
import json


class MalformedTask(ValueError):
    """A queue message that can never be processed, however often it is redelivered."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ProcessingTask:
    video_id: str
    bucket: str
    key: str
    original_name: str
    file_size: int
    mime_type: str
    timestamp: str = field(default_factory=_utcnow_iso)

    # wire name -> attribute
    WIRE_FIELDS = {
        "videoId": "video_id",
        "bucket": "bucket",
        "key": "key",
        "timestamp": "timestamp",
        "originalName": "original_name",
        "fileSize": "file_size",
        "mimeType": "mime_type",
    }

    def to_message(self) -> dict:
        return {wire: getattr(self, attr) for wire, attr in self.WIRE_FIELDS.items()}

    @classmethod
    def from_message(cls, body) -> "ProcessingTask":
        # publishers that send no content type arrive as raw bytes
        if isinstance(body, (bytes, bytearray, str)):
            try:
                body = json.loads(body)
            except ValueError as e:
                raise MalformedTask(f"Task body is not valid JSON: {e}") from e

        if not isinstance(body, dict):
            raise MalformedTask(f"Task body must be a JSON object, got {type(body).__name__}")

        missing = [wire for wire in cls.WIRE_FIELDS if body.get(wire) in (None, "")]
        if missing:
            raise MalformedTask(f"Task is missing fields: {missing}")

        try:
            file_size = int(body["fileSize"])
        except (TypeError, ValueError):
            raise MalformedTask(f"fileSize must be an integer, got {body['fileSize']!r}")

        return cls(
            video_id=str(body["videoId"]),
            bucket=str(body["bucket"]),
            key=str(body["key"]),
            original_name=str(body["originalName"]),
            file_size=file_size,
            mime_type=str(body["mimeType"]),
            timestamp=str(body["timestamp"]),
        )
