from __future__ import annotations

import logging
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from drivermon.core.config import settings

logger = logging.getLogger(__name__)


def clip_key(trip_id: str, clip_id: str) -> str:
    return f"clips/{trip_id}/{clip_id}.webm"


def event_image_key(trip_id: str, event_id: str) -> str:
    return f"events/{trip_id}/{event_id}.jpg"


class ObjectStoreError(Exception):
    pass


class ObjectStore(Protocol):
    def put(self, key: str, body: bytes, content_type: str) -> str: ...

    def presign_upload(self, key: str, content_type: str) -> str: ...

    def presign_download(self, key: str) -> str: ...


class S3ObjectStore:
    """Blob storage for clips and detection images backed by an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        expires_in: int = 3600,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.expires_in = expires_in
        self._client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, key: str, body: bytes, content_type: str) -> str:
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"put {key} failed: {exc}") from exc
        logger.info("Stored %s (%d bytes) in %s", key, len(body), self.bucket)
        return self.public_url(key)

    def presign_upload(self, key: str, content_type: str) -> str:
        return self._client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=self.expires_in,
        )

    def presign_download(self, key: str) -> str:
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.expires_in,
        )


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        _store = S3ObjectStore(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            expires_in=settings.presign_expires_sec,
        )
    return _store
