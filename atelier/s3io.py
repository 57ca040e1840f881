"""
s3io.py: S3 helpers used by the transfer executor and the file list builder.

Covers the handful of object-store operations the mover needs:
  - parse/validate s3://bucket/key URIs
  - existence checks and recursive listing under a key prefix
  - managed copy (server side), upload, download, delete
  - a credential check before any real transfer starts

Dependencies:
  - boto3 (AWS SDK for Python)
  - AWS credentials must be configured in environment, ~/.aws/credentials or
    via AWS_PROFILE

Every function takes the S3 client as its first argument so a run creates one
client and tests can hand in a fake.
"""

# ── Stdlib imports ─────────────────────────────────────────────────────────────
import logging
import os
import re
from typing import Iterator, Optional, Tuple

# ── External deps ─────────────────────────────────────────────────────────────
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from atelier import config
from atelier.errors import ValidationError

log = logging.getLogger(__name__)

S3_SCHEME = "s3://"
_BUCKET_RE = re.compile(r"^[a-zA-Z0-9.-]+$")


# ──────────────────────────────────────────────────────────────────────────────
# URI helpers
# ──────────────────────────────────────────────────────────────────────────────
def is_s3_uri(path: str) -> bool:
    return path.startswith(S3_SCHEME)


def parse_s3(uri: str) -> Tuple[str, str]:
    """
    Split an S3 URI into (bucket, key).

    The key may be empty (bucket root) or end with '/' (a prefix). A missing
    or malformed bucket segment raises ValidationError.
    """
    if not is_s3_uri(uri):
        raise ValidationError(f"Not an S3 URI: {uri}")

    bucket, _, key = uri[len(S3_SCHEME):].partition("/")
    if not bucket or not _BUCKET_RE.match(bucket):
        raise ValidationError(f"Invalid S3 path format: {uri} (expected s3://bucket-name/path/)")

    return bucket, key


def s3_uri(bucket: str, key: str) -> str:
    """Join bucket + key into an s3:// URI string."""
    return f"{S3_SCHEME}{bucket}/{key}"


# ──────────────────────────────────────────────────────────────────────────────
# Client setup
# ──────────────────────────────────────────────────────────────────────────────
def _session() -> "boto3.session.Session":
    kwargs = {}
    if config.AWS_PROFILE:
        kwargs["profile_name"] = config.AWS_PROFILE
    if config.AWS_REGION:
        kwargs["region_name"] = config.AWS_REGION
    return boto3.session.Session(**kwargs)


def get_client():
    """Create the S3 client for one run."""
    return _session().client("s3")


def check_credentials() -> str:
    """
    Confirm AWS credentials resolve to an identity. Returns the caller ARN.
    Raises ValidationError if no credentials are configured or they are rejected.
    """
    try:
        ident = _session().client("sts").get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise ValidationError(f"AWS credentials not configured or invalid: {e}") from e
    arn = ident.get("Arn", "unknown")
    log.info(f"AWS credentials validated ({arn})")
    return arn


# ──────────────────────────────────────────────────────────────────────────────
# Object operations
# ──────────────────────────────────────────────────────────────────────────────
def _is_not_found(e: ClientError) -> bool:
    status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    code = e.response.get("Error", {}).get("Code")
    return status == 404 or code in ("404", "NotFound", "NoSuchKey")


def head(s3, uri: str) -> Optional[dict]:
    """Return head_object metadata, None if the object does not exist, else re-raise."""
    bucket, key = parse_s3(uri)
    try:
        return s3.head_object(Bucket=bucket, Key=key)
    except ClientError as e:
        if _is_not_found(e):
            return None
        raise


def object_exists(s3, uri: str) -> bool:
    """Return True if the given S3 object exists, False if 404/NotFound, else re-raise."""
    return head(s3, uri) is not None


def prefix_has_objects(s3, uri: str) -> bool:
    """True if at least one key starts with the URI's key."""
    bucket, key = parse_s3(uri)
    resp = s3.list_objects_v2(Bucket=bucket, Prefix=key, MaxKeys=1)
    return resp.get("KeyCount", len(resp.get("Contents", []))) > 0


def list_keys(s3, uri: str) -> Iterator[str]:
    """
    Yield every key under the URI's key prefix, following pagination.
    Zero-byte "folder marker" keys (ending in '/') are skipped.
    """
    bucket, prefix = parse_s3(uri)
    paginator = s3.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get("Contents", []):
            key = obj["Key"]
            if key.endswith("/"):
                continue
            yield key


def copy(s3, src_uri: str, dst_uri: str, storage_class: str) -> None:
    """Server-side managed copy (multipart for large objects) with a storage class."""
    src_bucket, src_key = parse_s3(src_uri)
    dst_bucket, dst_key = parse_s3(dst_uri)
    s3.copy(
        {"Bucket": src_bucket, "Key": src_key},
        dst_bucket,
        dst_key,
        ExtraArgs={"StorageClass": storage_class},
    )


def upload(s3, local: str, uri: str, storage_class: str) -> None:
    b, k = parse_s3(uri)
    s3.upload_file(local, b, k, ExtraArgs={"StorageClass": storage_class})


def download(s3, uri: str, local: str) -> None:
    b, k = parse_s3(uri)
    # Ensure parent directory exists before writing
    os.makedirs(os.path.dirname(local) or ".", exist_ok=True)
    s3.download_file(b, k, local)


def delete(s3, uri: str) -> None:
    b, k = parse_s3(uri)
    s3.delete_object(Bucket=b, Key=k)
