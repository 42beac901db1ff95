from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Iterator

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from django.conf import settings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}

DEFAULT_CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    pass


class ObjectNotFound(StorageError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    content_type: str | None = None
    etag: str | None = None


def _is_not_found(e: ClientError) -> bool:
    code = (e.response.get("Error") or {}).get("Code")
    return str(code) in _NOT_FOUND_CODES


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


class ObjectStore:
    """
    Key/value blob storage over one S3/MinIO bucket.

    boto3 clients are thread-safe, so a single instance is shared by all
    request handlers of a process.
    """

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls) -> "ObjectStore":
        return cls(get_s3_client(), settings.S3_BUCKET)

    def verify_bucket(self, create: bool = False) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            if not _is_not_found(e):
                raise
            if not create:
                raise StorageError(f"Bucket {self.bucket} not found")
            self.client.create_bucket(Bucket=self.bucket)
            logger.info("Bucket created | bucket=%s", self.bucket)
        logger.info("Object store verified | bucket=%s", self.bucket)

    def upload_file(self, local_path, key: str, content_type: str | None = None, metadata: dict | None = None) -> int:
        """
        Upload a single file with an optional Content-Type and user metadata.
        Returns the number of bytes uploaded.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        if metadata:
            extra["Metadata"] = metadata
        size = Path(local_path).stat().st_size
        self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)
        logger.info("Object uploaded | bucket=%s key=%s size=%s", self.bucket, key, size)
        return size

    def put_bytes(self, key: str, data: bytes, content_type: str | None = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        logger.info("Object written | bucket=%s key=%s size=%s", self.bucket, key, len(data))

    def download_file(self, key: str, local_path) -> int:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(self.bucket, key, str(local_path))
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound(key) from e
            raise
        size = local_path.stat().st_size
        logger.info("Object downloaded | bucket=%s key=%s size=%s path=%s", self.bucket, key, size, local_path)
        return size

    def stat(self, key: str) -> ObjectInfo:
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound(key) from e
            raise
        return ObjectInfo(
            key=key,
            size=int(resp.get("ContentLength") or 0),
            content_type=resp.get("ContentType"),
            etag=resp.get("ETag"),
        )

    def iter_object(
        self,
        key: str,
        start: int | None = None,
        end: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Iterator[bytes]:
        """
        Stream an object, or the inclusive byte range start..end of it.
        The GET is issued before the first chunk is requested so a missing
        key raises here rather than mid-response.
        """
        params = {"Bucket": self.bucket, "Key": key}
        if start is not None:
            params["Range"] = f"bytes={start}-{'' if end is None else end}"
        try:
            resp = self.client.get_object(**params)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound(key) from e
            raise
        return resp["Body"].iter_chunks(chunk_size=chunk_size)

    def read_bytes(self, key: str) -> bytes:
        return b"".join(self.iter_object(key))

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("Object deleted | bucket=%s key=%s", self.bucket, key)

    def list_keys(self, prefix: str) -> list[str]:
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys
