"""
Avatar storage on S3.
"""
import logging
import os
from typing import BinaryIO
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import UnexpectedError

logger = logging.getLogger(__name__)

_s3 = None


def get_client():
    # Default AWS credential chain (env vars, credentials file or IAM role)
    global _s3
    if _s3 is None:
        _s3 = boto3.client("s3", region_name=settings.S3_REGION)
    return _s3


def reset_client():
    global _s3
    _s3 = None


def is_configured() -> bool:
    return bool(settings.S3_BUCKET_NAME)


def upload_avatar(user_id: str, fileobj: BinaryIO, filename: str, content_type: str) -> str:
    """Upload an avatar image and return its public URL."""
    extension = os.path.splitext(filename or "")[1].lower() or ".img"
    s3_key = f"avatars/{user_id}/{uuid4().hex[:12]}{extension}"
    try:
        get_client().upload_fileobj(
            fileobj,
            settings.S3_BUCKET_NAME,
            s3_key,
            ExtraArgs={"ContentType": content_type},
        )
    except ClientError as e:
        logger.error(f"Avatar upload failed for user {user_id}: {str(e)}")
        raise UnexpectedError("Failed to upload avatar") from e
    return f"https://{settings.S3_BUCKET_NAME}.s3.{settings.S3_REGION}.amazonaws.com/{s3_key}"
