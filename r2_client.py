# r2_client.py
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

import boto3
from botocore.config import Config

from settings import settings

# --- R2 / S3 client ---------------------------------------------------------

# NOTE:
# - endpoint_url MUST be the S3 API endpoint (the cloudflarestorage.com host),
#   NOT the public/dev domain. Region must be "auto" and path-style is required.
_BUCKET = settings.r2_bucket


def _normalized_endpoint():
    endpoint = (settings.r2_endpoint_url or "").rstrip("/")
    # tolerate a bucket pasted onto the endpoint
    if _BUCKET and endpoint.endswith(f"/{_BUCKET}"):
        endpoint = endpoint[: -(len(_BUCKET) + 1)]
    return endpoint or None


@lru_cache(maxsize=1)
def _s3():
    return boto3.client(
        "s3",
        endpoint_url=_normalized_endpoint(),
        aws_access_key_id=settings.r2_access_key_id or None,
        aws_secret_access_key=settings.r2_secret_access_key or None,
        region_name="auto",
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


# --- Helpers ----------------------------------------------------------------

def download_key(job_id: str, suffix: str) -> str:
    """Versioned object key, e.g. downloads/2025-10-15/<job_id>.mp4"""
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return f"downloads/{day}/{job_id}{suffix}"


# --- API used by the app -----------------------------------------------------

def upload_file(path: Path, key: str, *, content_type: str = "video/mp4") -> str:
    """Upload a finished download to R2 and return its key."""
    _s3().upload_file(
        str(path),
        _BUCKET,
        key,
        ExtraArgs={"ContentType": content_type},
    )
    return key


def get_object_stream(key: str):
    """
    Returns (streaming_body, content_type) for the given key.
    Used by the /api/file/{id} route in r2 mode.
    """
    obj = _s3().get_object(Bucket=_BUCKET, Key=key)
    return obj["Body"], obj.get("ContentType", "application/octet-stream")
