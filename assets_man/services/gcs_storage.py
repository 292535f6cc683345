import logging
from datetime import timedelta
from typing import BinaryIO

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage as gcs

from .object_storage import DEFAULT_EXPIRES_IN, ObjectStorage, PresignedUrl, StorageError, content_disposition

logger = logging.getLogger("assets_man.storage.gcs")


class GCSStorage(ObjectStorage):
    def __init__(self, bucket: str, project_id: str | None = None, key_file_path: str | None = None, client=None):
        self.bucket = bucket
        if client is None:
            if key_file_path:
                client = gcs.Client.from_service_account_json(key_file_path, project=project_id)
            else:
                client = gcs.Client(project=project_id)
        self.client = client
        self._bucket = client.bucket(bucket)

    def check_bucket(self) -> None:
        try:
            found = self._bucket.exists()
        except GoogleAPIError as exc:
            raise StorageError(f"bucket lookup failed for {self.bucket}") from exc
        if not found:
            raise StorageError(f"NotFound: bucket {self.bucket} does not exist")

    def exists(self, key: str) -> bool:
        try:
            return self._bucket.blob(key).exists()
        except GoogleAPIError as exc:
            raise StorageError(f"exists failed for {key}") from exc

    def get_object_stream(self, key: str) -> BinaryIO:
        try:
            return self._bucket.blob(key).open("rb")
        except GoogleAPIError as exc:
            raise StorageError(f"open failed for {key}") from exc

    def upload_buffer(self, key: str, buffer: bytes, content_type: str) -> None:
        try:
            self._bucket.blob(key).upload_from_string(buffer, content_type=content_type)
        except GoogleAPIError as exc:
            raise StorageError(f"upload failed for {key}") from exc

    def get_presigned_upload_url(self, key: str, content_type: str, expires_in: int = DEFAULT_EXPIRES_IN) -> PresignedUrl:
        try:
            url = self._bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="PUT",
                content_type=content_type,
            )
        except (GoogleAPIError, ValueError) as exc:
            raise StorageError(f"signing PUT failed for {key}") from exc
        return PresignedUrl(url=url, key=key, expires_in=expires_in)

    def get_presigned_download_url(self, key: str, expires_in: int = DEFAULT_EXPIRES_IN, filename: str | None = None) -> PresignedUrl:
        try:
            url = self._bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="GET",
                response_disposition=content_disposition(filename) if filename else None,
            )
        except (GoogleAPIError, ValueError) as exc:
            raise StorageError(f"signing GET failed for {key}") from exc
        return PresignedUrl(url=url, key=key, expires_in=expires_in)

    def delete_object(self, key: str) -> bool:
        try:
            self._bucket.blob(key).delete()
            return True
        except NotFound:
            return True
        except GoogleAPIError as exc:
            logger.warning("delete failed", extra={"key": key, "error": str(exc)})
            return False

    def copy_object(self, source_key: str, destination_key: str) -> None:
        try:
            self._bucket.copy_blob(self._bucket.blob(source_key), self._bucket, destination_key)
        except GoogleAPIError as exc:
            raise StorageError(f"copy failed for {source_key}") from exc
