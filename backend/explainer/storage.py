"""S3-compatible artifact store (Cloudflare R2 in production).

Keys follow ``projects/{project_id}/{folder}/{filename}``. Transport errors
are wrapped in :class:`StorageError` and never retried here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import StorageError
from .models import AssetType

logger = logging.getLogger(__name__)

CATEGORY_FOLDERS: dict[AssetType, str] = {
    AssetType.DOC: "docs",
    AssetType.AUDIO: "audio",
    AssetType.ALIGN: "align",
    AssetType.FRAME: "frames",
    AssetType.CUE: "cues",
    AssetType.VIDEO: "video",
}
PLAN_FOLDER = "plan"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str


@dataclass(frozen=True)
class ObjectInfo:
    size: int
    content_type: Optional[str]
    last_modified: Optional[datetime]


def category_folder(asset_type: AssetType) -> str:
    return CATEGORY_FOLDERS.get(asset_type, "misc")


def build_key(project_id: str, asset_type: AssetType, filename: str) -> str:
    return f"projects/{project_id}/{category_folder(asset_type)}/{filename}"


def build_plan_key(project_id: str, filename: str, version: Optional[str] = None) -> str:
    if version:
        return f"projects/{project_id}/{PLAN_FOLDER}/{version}/{filename}"
    return f"projects/{project_id}/{PLAN_FOLDER}/{filename}"


class ArtifactStore:
    def __init__(
        self,
        client_factory: Callable[[], Any],
        bucket: str,
        *,
        endpoint: str = "",
        public_base_url: str = "",
        configured: bool = True,
    ) -> None:
        self._client_factory = client_factory
        self.configured = configured
        self._client: Any = None
        self.bucket = bucket
        self.endpoint = endpoint.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
            logger.info("Object store client initialized for bucket %s", self.bucket)
        return self._client

    def public_url(self, key: str) -> str:
        base = self.public_base_url or self.endpoint
        return f"{base}/{key}"

    def put(
        self,
        project_id: str,
        asset_type: AssetType,
        filename: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        return self._put_object(build_key(project_id, asset_type, filename), data, content_type)

    def put_plan_file(
        self,
        project_id: str,
        filename: str,
        content: str | bytes,
        content_type: str = "application/json",
        *,
        version: Optional[str] = None,
    ) -> StoredObject:
        data = content.encode("utf-8") if isinstance(content, str) else content
        return self._put_object(build_plan_key(project_id, filename, version), data, content_type)

    def _put_object(self, key: str, data: bytes, content_type: str) -> StoredObject:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Upload failed for key=%s: %s", key, exc)
            raise StorageError(f"Failed to upload file: {exc}") from exc
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return StoredObject(key=key, url=self.public_url(key))

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response.get("Body")
            if body is None:
                raise StorageError("File not found or empty")
            data = body.read()
        except (BotoCoreError, ClientError) as exc:
            logger.error("Download failed for key=%s: %s", key, exc)
            raise StorageError(f"Failed to download file: {exc}") from exc
        logger.info("Downloaded %s (%d bytes)", key, len(data))
        return data

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Delete failed for key=%s: %s", key, exc)
            raise StorageError(f"Failed to delete file: {exc}") from exc
        logger.info("Deleted %s", key)

    def presign(
        self,
        key: str,
        direction: Literal["download", "upload"] = "download",
        ttl: int = 3600,
        content_type: Optional[str] = None,
    ) -> str:
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if direction == "upload":
            operation = "put_object"
            if content_type:
                params["ContentType"] = content_type
        else:
            operation = "get_object"
        try:
            return self.client.generate_presigned_url(operation, Params=params, ExpiresIn=ttl)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Presign (%s) failed for key=%s: %s", direction, key, exc)
            raise StorageError(f"Failed to generate presigned {direction} URL: {exc}") from exc

    def file_info(self, key: str) -> ObjectInfo:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to get file info: {exc}") from exc
        return ObjectInfo(
            size=int(response.get("ContentLength") or 0),
            content_type=response.get("ContentType"),
            last_modified=response.get("LastModified"),
        )

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return False
            raise StorageError(f"Failed to check file: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to check file: {exc}") from exc
        return True

    def check_connection(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError, StorageError) as exc:
            logger.error("Object store connection failed: %s", exc)
            return False
        return True


def _unconfigured_client() -> Any:
    raise StorageError(
        "Missing required R2 environment variables. Need: endpoint, access_key_id, secret_access_key, and bucket_name"
    )


def build_store(settings: Settings) -> ArtifactStore:
    if not settings.storage_configured:
        return ArtifactStore(_unconfigured_client, settings.r2_bucket, endpoint=settings.r2_endpoint, configured=False)

    def _factory() -> Any:
        return boto3.client(
            "s3",
            endpoint_url=settings.r2_endpoint,
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name="auto",
        )

    return ArtifactStore(
        _factory,
        settings.r2_bucket,
        endpoint=settings.r2_endpoint,
        public_base_url=settings.r2_public_base_url,
    )
