from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from resume_publisher.config.settings import Settings
from resume_publisher.exceptions import ObjectStoreError
from resume_publisher.logging.logger import Log
from resume_publisher.storage.base import BaseObjectStore


class S3ObjectStore(BaseObjectStore):
    """Object store adapter for S3-compatible buckets (AWS S3, Cloudflare R2)."""

    def __init__(self, client: Any, bucket: str, url_ttl_seconds: int) -> None:
        self._client = client
        self._bucket = bucket
        self._url_ttl_seconds = url_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        client = boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint_url or None,
            aws_access_key_id=settings.storage_access_key_id or None,
            aws_secret_access_key=settings.storage_secret_access_key or None,
            region_name=settings.storage_region,
        )
        return cls(client, settings.storage_bucket, settings.storage_url_ttl_seconds)

    def sign_put(self, path: str) -> str:
        return self._presign(
            "put_object",
            {"Bucket": self._bucket, "Key": path, "ContentType": "application/pdf"},
        )

    def sign_get(self, path: str) -> str:
        return self._presign("get_object", {"Bucket": self._bucket, "Key": path})

    def copy(self, src: str, dst: str) -> None:
        try:
            self._client.copy_object(
                Bucket=self._bucket,
                CopySource={"Bucket": self._bucket, "Key": src},
                Key=dst,
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"Failed to copy {src} to {dst}: {exc}") from exc
        Log.debug(f"Copied object {src} -> {dst}")

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=path)
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"Failed to delete {path}: {exc}") from exc

    def list_older_than(self, prefix: str, cutoff: datetime) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    if obj["LastModified"] < cutoff:
                        keys.append(obj["Key"])
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"Failed to list {prefix}: {exc}") from exc
        return keys

    def _presign(self, operation: str, params: dict[str, str]) -> str:
        try:
            return self._client.generate_presigned_url(
                operation,
                Params=params,
                ExpiresIn=self._url_ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(f"Failed to presign {operation}: {exc}") from exc
