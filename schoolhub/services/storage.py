"""
Media storage for uploaded attachments.

Two backends share the same small interface (``save`` / ``delete`` /
``file_url`` / ``key_from_url``): ``LocalStorage`` writes under ``UPLOAD_DIR``
and is served by the ``/uploads`` static mount, ``S3Storage`` puts objects in
a bucket and hands out presigned download URLs.
Routes get the configured backend through the ``get_storage`` dependency.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from schoolhub.config.settings import settings
from schoolhub.core.exceptions import InvalidUpload, NotFoundError, StorageError
from schoolhub.core.logging_config import get_logger

logger = get_logger(__name__)

MB = 1024 * 1024


@dataclass(frozen=True)
class UploadRule:
    folder: str
    extensions: Tuple[str, ...]
    max_bytes: int
    label: str
    image_only: bool = False


UPLOAD_RULES = {
    "profile_picture": UploadRule(
        "student-profiles", ("jpg", "jpeg", "png", "gif", "webp"), 5 * MB,
        "image", image_only=True,
    ),
    "portfolio": UploadRule("portfolios", ("pdf",), 10 * MB, "PDF"),
    "document": UploadRule(
        "documents", ("pdf", "doc", "docx", "jpg", "jpeg", "png"), 10 * MB, "document"
    ),
    "invoice": UploadRule("invoices", ("pdf", "jpg", "jpeg", "png"), 10 * MB, "invoice"),
}


def validate_upload(kind: str, filename: Optional[str], content_type: Optional[str], size: int) -> str:
    """Check an upload against the rule for ``kind`` and return its extension."""
    rule = UPLOAD_RULES[kind]
    if not filename:
        raise InvalidUpload("No file uploaded")
    if size == 0:
        raise InvalidUpload("Uploaded file is empty")
    if size > rule.max_bytes:
        raise InvalidUpload(f"File too large (max {rule.max_bytes // MB}MB)")

    ext = Path(filename).suffix.lower().lstrip(".")
    if ext not in rule.extensions:
        raise InvalidUpload(
            f"Only {rule.label} files are allowed ({', '.join(rule.extensions)})"
        )
    if rule.image_only and not (content_type or "").startswith("image/"):
        raise InvalidUpload("Only image files are allowed")
    if ext == "pdf" and content_type and content_type not in (
        "application/pdf", "application/octet-stream"
    ):
        raise InvalidUpload("Only PDF files are allowed")
    return ext


def build_key(folder: str, prefix: str, ext: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{folder}/{prefix}-{stamp}-{uuid.uuid4().hex[:8]}.{ext}"


class LocalStorage:
    """Stores files on disk; URLs are relative to the ``/uploads`` mount."""

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, key: str) -> Path:
        """Absolute path of ``key``; keys may not point outside the root."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if not path.is_relative_to(root) or path == root:
            raise StorageError(f"Refusing path outside upload directory: {key}")
        return path

    def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store file: {e}")
        return f"{self.url_prefix}/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        if not url or not url.startswith(self.url_prefix + "/"):
            return None
        return url[len(self.url_prefix) + 1:]

    def file_url(self, key: str, expires_in: int = 3600) -> str:
        self.path_for(key)
        return f"{self.url_prefix}/{key}"

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"Stored file already gone: {key}")
        except OSError as e:
            raise StorageError(f"Failed to delete file: {e}")


class S3Storage:
    """Stores files in an S3 bucket with public object URLs."""

    def __init__(self, bucket: str, region: str, client=None):
        self.bucket = bucket
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            kwargs = {"region_name": self.region}
            if settings.AWS_ACCESS_KEY_ID:
                kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
                kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
            self._client = boto3.client("s3", **kwargs)
        return self._client

    @property
    def base_url(self) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload to S3: {e}")
        return f"{self.base_url}/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        if not url or not url.startswith(self.base_url + "/"):
            return None
        return url[len(self.base_url) + 1:]

    def file_url(self, key: str, expires_in: int = 3600) -> str:
        """Presigned GET URL, valid for ``expires_in`` seconds."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to generate presigned URL: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete from S3: {e}")


def store_upload(storage, kind: str, prefix: str, filename: str, content_type: Optional[str], data: bytes) -> str:
    """Validate and store an upload, returning its public URL."""
    ext = validate_upload(kind, filename, content_type, len(data))
    key = build_key(UPLOAD_RULES[kind].folder, prefix, ext)
    url = storage.save(key, data, content_type)
    logger.info(f"Stored {kind} upload {filename!r} as {key}")
    return url


def access_url(storage, url: Optional[str]) -> str:
    """URL a permitted client can fetch the stored file from.

    S3 objects get a short-lived presigned URL; local files are served from
    the static mount.
    """
    key = storage.key_from_url(url) if url else None
    if key is None:
        raise NotFoundError("File not found")
    return storage.file_url(key, settings.FILE_URL_EXPIRE_SECONDS)


def remove_stored_file(storage, url: Optional[str]) -> None:
    """Best-effort delete of a previously stored file.

    Failures are logged and swallowed so the caller's database update goes
    ahead regardless.
    """
    if not url:
        return
    key = storage.key_from_url(url)
    if key is None:
        logger.warning(f"Cannot map URL to a stored object, skipping delete: {url}")
        return
    try:
        storage.delete(key)
    except StorageError as e:
        logger.error(f"Error deleting stored file {key}: {e}")


_storage = None


def get_storage():
    """FastAPI dependency returning the configured storage backend."""
    global _storage
    if _storage is None:
        if settings.STORAGE_MODE == "s3":
            _storage = S3Storage(settings.S3_BUCKET_NAME, settings.AWS_REGION)
        else:
            _storage = LocalStorage(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)
    return _storage
