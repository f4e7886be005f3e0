import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional
from urllib.parse import quote
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from src.core.config import settings

logger = logging.getLogger(__name__)

PUBLIC = "public"
PRIVATE = "private"


@dataclass(frozen=True)
class StoredAsset:
    id: str
    url: str


class ObjectStorageError(Exception):
    """The object store rejected the upload or could not be reached."""


def create_s3_client():
    return boto3.client(
        "s3",
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION,
    )


class S3ObjectStorage:
    """
    Stores uploads in an S3 bucket.

    Every object lands under ``<key_prefix><random id>/<name>`` so two uploads
    with the same client filename never overwrite each other.
    """

    def __init__(
        self,
        client,
        bucket: str,
        region: str,
        public_base_url: Optional[str] = None,
        key_prefix: str = "",
    ):
        if not bucket:
            raise ValueError("AWS_S3_BUCKET is not set in environment variables.")
        self.client = client
        self.bucket = bucket
        self.key_prefix = key_prefix
        self.public_base_url = (
            public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com"
        ).rstrip("/")

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    async def store(
        self,
        name: str,
        payload: BinaryIO,
        media_type: str,
        visibility: str = PUBLIC,
    ) -> StoredAsset:
        key = f"{self.key_prefix}{uuid4().hex}/{name}"
        extra = {"ContentType": media_type}
        if visibility == PUBLIC:
            extra["ACL"] = "public-read"

        try:
            await run_in_threadpool(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=payload,
                **extra,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStorageError(str(e)) from e

        logger.info("Uploaded s3://%s/%s", self.bucket, key)
        return StoredAsset(id=key, url=self.url_for(key))


def create_object_storage() -> S3ObjectStorage:
    return S3ObjectStorage(
        create_s3_client(),
        bucket=settings.AWS_S3_BUCKET,
        region=settings.AWS_REGION,
        public_base_url=settings.S3_PUBLIC_BASE_URL,
        key_prefix=settings.S3_KEY_PREFIX,
    )
