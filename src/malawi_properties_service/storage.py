"""
Property image storage on an S3-compatible object store (Hetzner in production).

One network call per operation with no retries. Missing configuration raises
``StorageConfigurationError`` before anything is sent; failures reported by
the store are wrapped in ``StorageOperationError`` with the store's message.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from malawi_properties_service.config import Settings

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"


class StorageConfigurationError(RuntimeError):
    pass


class StorageOperationError(RuntimeError):
    pass


class ObjectStorage:
    def __init__(self, settings: Settings, client: Any = None):
        self.bucket = settings.STORAGE_BUCKET
        self.endpoint = settings.STORAGE_ENDPOINT
        self.cdn_url = settings.STORAGE_CDN_URL
        self.bucket_public = settings.STORAGE_BUCKET_PUBLIC
        self._settings = settings
        self._client = client

    @property
    def client(self):
        """Lazily built boto3 client; path-style addressing is required by Hetzner."""
        if self._client is None:
            if not self._settings.storage_configured():
                raise StorageConfigurationError(
                    "Object storage is not configured. Set the STORAGE_ENDPOINT, "
                    "STORAGE_ACCESS_KEY, STORAGE_SECRET_KEY and STORAGE_BUCKET variables."
                )
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint,
                region_name=self._settings.STORAGE_REGION,
                aws_access_key_id=self._settings.STORAGE_ACCESS_KEY,
                aws_secret_access_key=self._settings.STORAGE_SECRET_KEY,
                config=Config(s3={"addressing_style": "path"}),
            )
        return self._client

    def public_url(self, path: str) -> str:
        if self.cdn_url:
            return f"{self.cdn_url}/{path}"
        if self.endpoint and self.bucket_public:
            return f"{self.endpoint}/{self.bucket}/{path}"
        raise StorageConfigurationError("No CDN URL or public S3 endpoint configured")

    def upload_file(self, data: bytes, path: str, content_type: str = "image/jpeg") -> str:
        """
        Upload ``data`` to ``path`` in the bucket.

        Args:
            data: File contents
            path: Key in the bucket, e.g. ``property-123/image.jpg``
            content_type: MIME type stored with the object

        Returns:
            str: The CDN URL, or the direct bucket URL for public buckets

        Raises:
            StorageConfigurationError: If credentials are missing, or the bucket
                is private and no CDN URL is configured
            StorageOperationError: If the store rejects the upload
        """
        if not self.bucket_public and not self.cdn_url:
            raise StorageConfigurationError("Private bucket requires STORAGE_CDN_URL to be configured")
        url = self.public_url(path)

        extra = {"ACL": "public-read"} if self.bucket_public else {}
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl=CACHE_CONTROL,
                **extra,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload of {path} failed: {e}")
            raise StorageOperationError(f"Failed to upload file: {e}") from e

        logger.info(f"Uploaded {len(data)} bytes to {path}")
        return url

    def delete_file(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Delete of {path} failed: {e}")
            raise StorageOperationError(f"Failed to delete file: {e}") from e
        logger.info(f"Deleted {path}")

    def get_presigned_url(self, path: str, expires_in: int = 3600) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageOperationError(f"Failed to generate presigned URL: {e}") from e

    def head_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise StorageOperationError(f"Bucket check failed: {e}") from e

    def extract_path_from_url(self, url: str) -> Optional[str]:
        """
        Recover the object key from a CDN or direct bucket URL. Any other
        absolute URL falls back to its path without the leading slash.
        """
        if not url:
            return None
        if self.cdn_url and url.startswith(self.cdn_url):
            return url[len(self.cdn_url):].lstrip("/") or None

        marker = f"/{self.bucket}/"
        if self.endpoint and marker in url:
            return url.split(marker, 1)[1] or None

        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            return None
        return parts.path.lstrip("/") or None
