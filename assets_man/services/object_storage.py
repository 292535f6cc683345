"""
Provider-agnostic object storage.

Routers and services talk to :class:`ObjectStorage` only; the concrete
adapter (S3 or GCS) is chosen once from settings by
:func:`create_object_storage`.
"""
from __future__ import annotations

import re
import secrets
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Iterable
from urllib.parse import quote

if TYPE_CHECKING:
    from ..core.config import Settings

DEFAULT_EXPIRES_IN = 3600

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


class StorageError(Exception):
    """A storage operation failed. Vendor detail is kept on ``__cause__`` only."""


@dataclass(frozen=True)
class PresignedUrl:
    url: str
    key: str
    expires_in: int


class ObjectStorage(ABC):
    bucket: str

    @abstractmethod
    def check_bucket(self) -> None:
        """Raise :class:`StorageError` unless the bucket is reachable."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_object_stream(self, key: str) -> BinaryIO:
        ...

    @abstractmethod
    def upload_buffer(self, key: str, buffer: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    def get_presigned_upload_url(self, key: str, content_type: str, expires_in: int = DEFAULT_EXPIRES_IN) -> PresignedUrl:
        ...

    @abstractmethod
    def get_presigned_download_url(self, key: str, expires_in: int = DEFAULT_EXPIRES_IN, filename: str | None = None) -> PresignedUrl:
        ...

    @abstractmethod
    def delete_object(self, key: str) -> bool:
        ...

    @abstractmethod
    def copy_object(self, source_key: str, destination_key: str) -> None:
        ...

    def delete_objects(self, keys: Iterable[str]) -> list[bool]:
        return [self.delete_object(key) for key in keys]

    def read_bytes(self, key: str) -> bytes:
        stream = self.get_object_stream(key)
        try:
            return stream.read()
        finally:
            close = getattr(stream, "close", None)
            if close:
                close()


def generate_storage_key(user_id: str, file_name: str, folder_id: str | None = None) -> str:
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(6))
    safe_name = _UNSAFE_NAME_CHARS.sub("_", file_name)
    prefix = f"{user_id}/{folder_id}" if folder_id else user_id
    return f"{prefix}/{timestamp}-{suffix}-{safe_name}"


def generate_thumbnail_key(original_key: str) -> str:
    head, _, file_name = original_key.rpartition("/")
    parts = [head, "thumbnails", file_name] if head else ["thumbnails", file_name]
    return "/".join(parts) + ".webp"


def content_disposition(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


def create_object_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_provider == "s3":
        from .s3_storage import S3Storage

        return S3Storage(
            bucket=settings.storage_bucket,
            region=settings.storage_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            endpoint_url=settings.storage_endpoint_url,
        )
    if settings.storage_provider == "gcs":
        from .gcs_storage import GCSStorage

        return GCSStorage(
            bucket=settings.storage_bucket,
            project_id=settings.gcs_project_id,
            key_file_path=settings.gcs_key_file_path,
        )
    raise ValueError(f"Unsupported storage provider: {settings.storage_provider}")
