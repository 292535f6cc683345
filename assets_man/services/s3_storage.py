import logging
from typing import BinaryIO, Iterable

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .object_storage import DEFAULT_EXPIRES_IN, ObjectStorage, PresignedUrl, StorageError, content_disposition

logger = logging.getLogger("assets_man.storage.s3")

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_DELETE_BATCH = 1000


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Storage(ObjectStorage):
    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region
        if client is None:
            credentials = {}
            if access_key_id and secret_access_key:
                credentials = {"aws_access_key_id": access_key_id, "aws_secret_access_key": secret_access_key}
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url or None,
                config=BotoConfig(signature_version="s3v4"),
                **credentials,
            )
        self.client = client

    def check_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"head_bucket failed for {self.bucket}") from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise StorageError(f"head_object failed for {key}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"head_object failed for {key}") from exc

    def get_object_stream(self, key: str) -> BinaryIO:
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)["Body"]
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"get_object failed for {key}") from exc

    def upload_buffer(self, key: str, buffer: bytes, content_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=buffer, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"put_object failed for {key}") from exc

    def get_presigned_upload_url(self, key: str, content_type: str, expires_in: int = DEFAULT_EXPIRES_IN) -> PresignedUrl:
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"presign put failed for {key}") from exc
        return PresignedUrl(url=url, key=key, expires_in=expires_in)

    def get_presigned_download_url(self, key: str, expires_in: int = DEFAULT_EXPIRES_IN, filename: str | None = None) -> PresignedUrl:
        params = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = content_disposition(filename)
        try:
            url = self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"presign get failed for {key}") from exc
        return PresignedUrl(url=url, key=key, expires_in=expires_in)

    def delete_object(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as exc:
            logger.warning("delete_object failed", extra={"key": key, "error": str(exc)})
            return False

    def delete_objects(self, keys: Iterable[str]) -> list[bool]:
        keys = list(keys)
        results: list[bool] = []
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start:start + _DELETE_BATCH]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                logger.warning("delete_objects failed", extra={"count": len(batch), "error": str(exc)})
                results.extend(False for _ in batch)
                continue
            failed = {err.get("Key") for err in response.get("Errors", [])}
            results.extend(key not in failed for key in batch)
        return results

    def copy_object(self, source_key: str, destination_key: str) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                Key=destination_key,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"copy_object failed for {source_key}") from exc
