"""
S3-compatible blob storage for vault uploads and their thumbnails.
Supports Supabase Storage, Cloudflare R2, AWS S3, MinIO, etc.
"""

import logging
import os
import secrets
import time

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings

logger = logging.getLogger(__name__)

_s3_client = None


class StorageUnavailable(Exception):
    """The blob store rejected or failed a request."""


def _get_s3_client():
    global _s3_client
    if _s3_client is None:
        settings = get_settings()
        _s3_client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region or "us-east-1",
            config=Config(signature_version="s3v4"),
        )
    return _s3_client


def build_storage_path(user_id: str, file_name: str) -> str:
    """Owner-scoped key: {user_id}/{unix_ms}-{random}.{ext}. The original name stays in the database."""
    _, ext = os.path.splitext(file_name)
    ext = ext.lstrip(".").lower() or "bin"
    return f"{user_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


async def upload_file(file_bytes: bytes, path: str, content_type: str) -> str:
    """Store bytes under path and return the path."""
    settings = get_settings()
    try:
        _get_s3_client().put_object(
            Bucket=settings.s3_bucket_name,
            Key=path,
            Body=file_bytes,
            ContentType=content_type,
        )
    except (BotoCoreError, ClientError) as e:
        raise StorageUnavailable(str(e)) from e

    logger.info("Uploaded %d bytes to %s/%s", len(file_bytes), settings.s3_bucket_name, path)
    return path


async def download_file(path: str) -> bytes:
    settings = get_settings()
    try:
        response = _get_s3_client().get_object(Bucket=settings.s3_bucket_name, Key=path)
        return response["Body"].read()
    except (BotoCoreError, ClientError) as e:
        raise StorageUnavailable(str(e)) from e


async def delete_file(path: str) -> None:
    settings = get_settings()
    try:
        _get_s3_client().delete_object(Bucket=settings.s3_bucket_name, Key=path)
    except (BotoCoreError, ClientError) as e:
        raise StorageUnavailable(str(e)) from e
    logger.info("Deleted %s/%s", settings.s3_bucket_name, path)


def get_presigned_url(path: str, expires_in: int | None = None) -> str:
    """Generate a pre-signed URL for temporary access (works for private buckets)."""
    settings = get_settings()
    client = _get_s3_client()
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.s3_bucket_name, "Key": path},
        ExpiresIn=expires_in or settings.presigned_url_ttl_seconds,
    )


def get_url_for_file(path: str) -> str:
    """Public URL when the bucket is public, otherwise a pre-signed one."""
    settings = get_settings()
    if settings.s3_public_url:
        return f"{settings.s3_public_url.rstrip('/')}/{path}"
    return get_presigned_url(path)
