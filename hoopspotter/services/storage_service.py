"""
Storage service for court photos.

Talks to the Supabase Storage S3-compatible endpoint with a lazily created
boto3 client. Objects live in the ``court-photos`` bucket and are served
from the public object URL.
"""

import logging
import os
from typing import List

from hoopspotter.services.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Lazy-initialized S3 client
_s3_client = None


def _get_config():
    """Read storage configuration from environment at call time (not import time)."""
    return {
        "endpoint_url": os.getenv("SUPABASE_S3_ENDPOINT"),
        "access_key_id": os.getenv("SUPABASE_S3_ACCESS_KEY_ID"),
        "secret_access_key": os.getenv("SUPABASE_S3_SECRET_ACCESS_KEY"),
        "region": os.getenv("SUPABASE_S3_REGION", "ap-northeast-1"),
        "bucket": os.getenv("COURT_PHOTO_BUCKET", "court-photos"),
        "supabase_url": os.getenv("SUPABASE_URL", ""),
    }


def _get_s3_client():
    """Get or create the boto3 S3 client. Lazy-imports boto3 to avoid import-time dependency."""
    global _s3_client
    if _s3_client is None:
        cfg = _get_config()
        if not all([cfg["endpoint_url"], cfg["access_key_id"], cfg["secret_access_key"]]):
            raise ConfigurationError(
                "Supabase Storage is not configured. Set SUPABASE_S3_ENDPOINT, "
                "SUPABASE_S3_ACCESS_KEY_ID and SUPABASE_S3_SECRET_ACCESS_KEY."
            )
        import boto3

        _s3_client = boto3.client(
            "s3",
            endpoint_url=cfg["endpoint_url"],
            aws_access_key_id=cfg["access_key_id"],
            aws_secret_access_key=cfg["secret_access_key"],
            region_name=cfg["region"],
        )
    return _s3_client


def check_storage_configuration() -> None:
    """
    Raise if public photo URLs cannot be built.

    Upload credentials are checked lazily, on the first upload.

    Raises:
        ConfigurationError: If SUPABASE_URL is not set
    """
    if not _get_config()["supabase_url"]:
        raise ConfigurationError("SUPABASE_URL is not set.")


def get_public_url(storage_path: str) -> str:
    """
    Build the public URL of an object in the photo bucket.

    Paths that are already absolute URLs are returned untouched; without
    SUPABASE_URL the bare path is returned.
    """
    if storage_path.startswith(("http://", "https://")):
        return storage_path
    cfg = _get_config()
    base = cfg["supabase_url"].rstrip("/")
    if not base:
        return storage_path
    return f"{base}/storage/v1/object/public/{cfg['bucket']}/{storage_path.lstrip('/')}"


def upload_file(file_bytes: bytes, key: str, content_type: str = "application/octet-stream") -> str:
    """
    Upload file bytes to the photo bucket under the given key.

    Objects are never overwritten; the caller generates unique keys.

    Args:
        file_bytes: Raw file content
        key: Object key (e.g., "<court_id>/1700000000000-<uuid>.jpg")
        content_type: MIME type for the uploaded object

    Returns:
        The object key
    """
    client = _get_s3_client()
    cfg = _get_config()

    client.put_object(
        Bucket=cfg["bucket"],
        Key=key,
        Body=file_bytes,
        ContentType=content_type,
        CacheControl="max-age=3600",
    )

    logger.info("Uploaded file to storage: %s", key)
    return key


def remove_files(keys: List[str]) -> bool:
    """
    Remove objects from the photo bucket. Best-effort: logs errors, never raises.

    Returns:
        True if the delete request succeeded, False otherwise
    """
    if not keys:
        return True
    try:
        client = _get_s3_client()
        cfg = _get_config()
        client.delete_objects(
            Bucket=cfg["bucket"],
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        logger.info("Removed %d file(s) from storage", len(keys))
        return True
    except Exception as e:
        logger.error("Failed to remove storage files %s: %s", keys, e)
        return False
