"""
Storage gateway for presigned URL issuance and direct object writes.

This module provides functionality for:
- Generating presigned PUT URLs so browsers upload forms straight to S3
- Generating presigned GET URLs for time-limited downloads
- Writing converted XForm XML server-side
- Computing the public URL of an object

Two ``StorageClient`` instances exist per process: a general one (which may
point at a local S3-compatible endpoint such as MinIO) used for presigning,
and a production one with its own credentials used only for conversion
output. Callers pick the instance explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .configuration import GatewaySettings
from .errors import ConfigurationError, StorageError, ValidationError
from .utils import basename

logger = logging.getLogger(__name__)

UPLOAD_URL_EXPIRATION = 15 * 60
DOWNLOAD_URL_EXPIRATION = 60 * 60


@dataclass(frozen=True)
class PresignedUpload:
    upload_url: str
    public_url: str


def safe_key(filename: str) -> str:
    """
    Reduce a caller-supplied filename to a storage key.

    Directory components are stripped so ``../../secret.xlsx`` can only ever
    address ``secret.xlsx`` at the bucket root. Trailing separators are
    dropped first, so ``forms/`` becomes ``forms``.

    Raises:
        ValidationError: If nothing usable remains after stripping
    """
    key = basename(filename.strip().rstrip("/\\"))
    if key in ("", ".", ".."):
        raise ValidationError(f"Invalid file name: {filename!r}")
    return key


def object_url(bucket: str, key: str, endpoint: str = "") -> str:
    """
    Public URL of an object.

    Path-style ``{endpoint}/{bucket}/{key}`` when an endpoint is given,
    virtual-hosted AWS style ``https://{bucket}.s3.amazonaws.com/{key}``
    otherwise.
    """
    quoted = quote(key, safe="/")
    if endpoint:
        return f"{endpoint.rstrip('/')}/{bucket}/{quoted}"
    return f"https://{bucket}.s3.amazonaws.com/{quoted}"


class StorageClient:
    """
    Capability-scoped wrapper around one boto3 S3 client and one bucket.

    Args:
        client: boto3 S3 client used for writes
        bucket: Bucket every operation targets
        public_endpoint: Externally reachable endpoint, empty for AWS
        signing_client: Client used for presigning; defaults to ``client``.
            Pass a client bound to the public endpoint when the service
            reaches storage over an internal address, so the signed host
            matches the host browsers will call.
        label: Name used in log lines
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        public_endpoint: str = "",
        signing_client: Optional[Any] = None,
        label: str = "general",
    ):
        self._client = client
        self._signing_client = signing_client or client
        self.bucket = bucket
        self.public_endpoint = public_endpoint
        self.label = label

    def object_url(self, key: str) -> str:
        return object_url(self.bucket, key, self.public_endpoint)

    def describe(self) -> str:
        target = self.public_endpoint or "AWS S3"
        return f"{self.label} storage: bucket={self.bucket} endpoint={target}"

    def presign_upload(self, filename: str, content_type: str = "") -> PresignedUpload:
        """
        Generate a presigned PUT URL valid for 15 minutes.

        Returns:
            PresignedUpload with the signed URL and the object's public URL

        Raises:
            ValidationError: If the filename reduces to nothing
            StorageError: If signing fails
        """
        key = safe_key(filename)
        params = {"Bucket": self.bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type

        try:
            url = self._signing_client.generate_presigned_url(
                "put_object",
                Params=params,
                ExpiresIn=UPLOAD_URL_EXPIRATION,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned upload URL for {key}: {e}")
            raise StorageError("Failed to generate presigned URL", cause=e) from e

        logger.info(f"Generated presigned upload URL for {key} (expires in {UPLOAD_URL_EXPIRATION}s)")
        return PresignedUpload(upload_url=url, public_url=self.object_url(key))

    def presign_download(self, filename: str) -> str:
        """
        Generate a presigned GET URL valid for 1 hour.

        Raises:
            ValidationError: If the filename reduces to nothing
            StorageError: If signing fails
        """
        key = safe_key(filename)
        try:
            url = self._signing_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=DOWNLOAD_URL_EXPIRATION,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned download URL for {key}: {e}")
            raise StorageError("Failed to generate presigned download URL", cause=e) from e

        logger.info(f"Generated presigned download URL for {key} (expires in {DOWNLOAD_URL_EXPIRATION}s)")
        return url

    def put_object(self, key: str, body: bytes, content_type: str) -> str:
        """
        Write ``body`` under ``key`` and return the object's public URL.

        ``key`` is used verbatim; callers build it from trusted parts.

        Raises:
            StorageError: If the write fails
        """
        try:
            logger.info(f"Uploading {len(body)} bytes to s3://{self.bucket}/{key} ({self.label})")
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload of {key} to {self.label} storage failed: {e}")
            raise StorageError(f"upload to {self.label} storage failed: {e}", cause=e) from e

        url = self.object_url(key)
        logger.info(f"Upload successful: {url}")
        return url


def _boto_config(settings: GatewaySettings, path_style: bool = False) -> Config:
    return Config(
        signature_version="s3v4",
        s3={"addressing_style": "path" if path_style else "auto"},
        connect_timeout=settings.storage_timeout_seconds,
        read_timeout=settings.storage_timeout_seconds,
        # failures surface to the caller immediately
        retries={"total_max_attempts": 1},
    )


def _s3_client(
    settings: GatewaySettings,
    access_key_id: str = "",
    secret_access_key: str = "",
    endpoint_url: str = "",
    path_style: bool = False,
):
    kwargs: dict[str, Any] = {
        "region_name": settings.region,
        "config": _boto_config(settings, path_style),
    }
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if access_key_id and secret_access_key:
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
    return boto3.client("s3", **kwargs)


def build_general_client(settings: GatewaySettings) -> StorageClient:
    """
    Create the general-purpose storage client.

    Static credentials are used when both AWS_ACCESS_KEY_ID and
    AWS_SECRET_ACCESS_KEY are set, otherwise boto3's default credential
    chain applies. When S3_EXTERNAL_ENDPOINT differs from S3_ENDPOINT a
    second client bound to the external endpoint does the signing.
    """
    client = _s3_client(
        settings,
        settings.access_key_id,
        settings.secret_access_key,
        endpoint_url=settings.s3_endpoint,
        path_style=settings.use_path_style,
    )

    signing_client = None
    if settings.s3_external_endpoint and settings.s3_external_endpoint != settings.s3_endpoint:
        signing_client = _s3_client(
            settings,
            settings.access_key_id,
            settings.secret_access_key,
            endpoint_url=settings.s3_external_endpoint,
            path_style=settings.use_path_style,
        )

    return StorageClient(
        client,
        settings.bucket_name,
        public_endpoint=settings.public_endpoint,
        signing_client=signing_client,
        label="general",
    )


def build_production_client(settings: GatewaySettings) -> StorageClient:
    """
    Create the production storage client used for converted XForms.

    It always talks to AWS S3 directly with its own credentials.

    Raises:
        ConfigurationError: If the production credentials are missing
    """
    if not settings.prod_access_key_id or not settings.prod_secret_access_key:
        raise ConfigurationError("PROD_AWS_ACCESS_KEY_ID and PROD_AWS_SECRET_ACCESS_KEY are required")

    client = _s3_client(settings, settings.prod_access_key_id, settings.prod_secret_access_key)
    return StorageClient(client, settings.bucket_name, label="production")
