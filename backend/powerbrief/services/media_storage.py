from __future__ import annotations

import logging
import re
from typing import Optional
from uuid import uuid4

import boto3
from botocore.config import Config

from powerbrief.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class MediaStorageConfigurationError(RuntimeError):
    pass


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename.strip()).strip("._")
    return cleaned or "file"


class MediaStorage:
    """
    Thin wrapper around S3-compatible storage for brand uploads and presigned GETs.
    """

    def __init__(self) -> None:
        if not settings.MEDIA_STORAGE_BUCKET:
            raise MediaStorageConfigurationError("MEDIA_STORAGE_BUCKET is required")
        if not settings.MEDIA_STORAGE_ACCESS_KEY or not settings.MEDIA_STORAGE_SECRET_KEY:
            raise MediaStorageConfigurationError(
                "MEDIA_STORAGE_ACCESS_KEY and MEDIA_STORAGE_SECRET_KEY are required"
            )

        addressing_style = "path" if settings.MEDIA_STORAGE_FORCE_PATH_STYLE else "auto"
        self.bucket = settings.MEDIA_STORAGE_BUCKET
        self.prefix = (settings.MEDIA_STORAGE_PREFIX or "").strip("/")
        self.presign_ttl = int(settings.MEDIA_STORAGE_PRESIGN_TTL_SECONDS or 900)

        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=settings.MEDIA_STORAGE_ENDPOINT,
            aws_access_key_id=settings.MEDIA_STORAGE_ACCESS_KEY,
            aws_secret_access_key=settings.MEDIA_STORAGE_SECRET_KEY,
            region_name=settings.MEDIA_STORAGE_REGION or "us-east-1",
            config=Config(
                s3={"addressing_style": addressing_style},
                signature_version="s3v4",
            ),
        )

    def build_key(self, *, brand_id: str, filename: str, folder: Optional[str] = None) -> str:
        """
        Brand-scoped keys: <prefix>/brands/<brand_id>/[<folder>/]<uuid>-<filename>
        """
        parts = [p for p in [self.prefix, "brands", brand_id, folder] if p]
        parts.append(f"{uuid4().hex}-{sanitize_filename(filename)}")
        return "/".join(parts)

    def upload_bytes(
        self,
        *,
        key: str,
        data: bytes,
        content_type: Optional[str],
        extra_metadata: Optional[dict[str, str]] = None,
    ) -> None:
        kwargs = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
        }
        if content_type:
            kwargs["ContentType"] = content_type
        if extra_metadata:
            kwargs["Metadata"] = extra_metadata
        self.client.put_object(**kwargs)
        logger.info("Stored object", extra={"key": key, "size": len(data)})

    def presign_get(self, *, key: str, expires_in: Optional[int] = None) -> str:
        ttl = int(expires_in or self.presign_ttl or 900)
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl,
        )
