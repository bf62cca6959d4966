"""
Object Storage
==============

S3-compatible (MinIO) object storage used to mirror article images.

Public URLs are built from the public endpoint settings, falling back to the
internal endpoint, with every key segment URL-encoded:
``<protocol>://<host>[:<port>]<public_path>/<bucket>/<key>``.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import StorageSettings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import AssetMirrorError, ErrorCode


@dataclass
class StoredObject:
    """Metadata of an uploaded object."""
    bucket: str
    key: str
    url: str
    etag: Optional[str] = None


def get_s3_client(settings: StorageSettings):
    """Create an S3 client for the configured MinIO endpoint."""
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        region_name=settings.region or "us-east-1",
        config=Config(s3={"addressing_style": "path"}),
    )


def build_public_url(settings: StorageSettings, key: str) -> str:
    """Public URL of ``key`` in the configured bucket."""
    endpoint = settings.public_endpoint or settings.endpoint
    use_ssl = settings.public_use_ssl if settings.public_use_ssl is not None else settings.use_ssl
    port = settings.public_port or settings.port
    protocol = "https" if use_ssl else "http"

    encoded_key = "/".join(quote(segment, safe="") for segment in key.split("/"))
    public_path = settings.public_path.strip("/")
    normalized_path = f"/{public_path}" if public_path else ""

    default_port = 443 if use_ssl else 80
    port_segment = "" if port == default_port else f":{port}"

    return f"{protocol}://{endpoint}{port_segment}{normalized_path}/{settings.bucket}/{encoded_key}"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> Optional[int]:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


class ObjectStorage:
    """Thin wrapper around an S3 client bound to one bucket."""

    def __init__(self, settings: StorageSettings, client=None):
        """Initialize object storage.

        Args:
            settings: Storage configuration
            client: Pre-built S3 client (a new one is created when omitted)
        """
        self.settings = settings
        self.client = client or get_s3_client(settings)
        self.logger = get_logger_for_component("object_storage")
        self._bucket_checked = False

    @property
    def bucket(self) -> str:
        return self.settings.bucket

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        if self._bucket_checked:
            return

        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            if _status_code(e) != 404 and _error_code(e) not in ("404", "NoSuchBucket", "NotFound"):
                raise
            self._create_bucket()

        self._bucket_checked = True

    def _create_bucket(self) -> None:
        try:
            self.client.create_bucket(Bucket=self.bucket)
            self.logger.info(f"Created bucket {self.bucket}")
        except ClientError as e:
            if _error_code(e) in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists") or _status_code(e) == 409:
                self.logger.debug(f"Bucket {self.bucket} already exists")
                return
            raise

    def upload(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
        length: Optional[int] = None,
    ) -> StoredObject:
        """Store ``body`` under ``key``; an existing object is overwritten.

        Raises:
            AssetMirrorError: If the bucket check or the upload fails
        """
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if length is not None:
            params["ContentLength"] = length

        try:
            self.ensure_bucket()
            response = self.client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise AssetMirrorError(
                f"Failed to upload {key}: {e}",
                storage_key=key,
                error_code=ErrorCode.ASSET_UPLOAD_FAILED,
            ) from e

        etag = response.get("ETag")
        return StoredObject(
            bucket=self.bucket,
            key=key,
            url=self.get_public_url(key),
            etag=etag.replace('"', "") if etag else None,
        )

    def get_public_url(self, key: str) -> str:
        return build_public_url(self.settings, key)

    def health_check(self) -> bool:
        """True if the storage answers; a missing bucket counts, upload creates it."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except ClientError as e:
            if _status_code(e) == 404 or _error_code(e) in ("404", "NoSuchBucket", "NotFound"):
                return True
            self.logger.warning(f"Object storage health check failed: {e}")
            return False
        except BotoCoreError as e:
            self.logger.warning(f"Object storage health check failed: {e}")
            return False
