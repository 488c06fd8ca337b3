# src/promoreel/services/media_store.py

"""
S3-backed object storage for generated videos.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from opentelemetry import trace

from promoreel.errors import InvalidRangeError, NotFoundError, TransportError
from promoreel.utils.http_range import content_range

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class RangeSlice:
    """Bytes [start, end] (inclusive) of an object of `total_size` bytes."""

    data: bytes
    start: int
    end: int
    total_size: int

    @property
    def content_range(self) -> str:
        return content_range(self.start, self.end, self.total_size)


def _is_missing(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _MISSING_CODES


def _storage_error(action: str, key: str, error: ClientError) -> TransportError:
    logger.error("S3 %s failed for key=%s: %s", action, key, error)
    return TransportError(
        f"Storage {action} failed for {key}",
        status_code=error.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
        body=str(error.response.get("Error", {}).get("Message") or error),
    )


class MediaStore:
    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        public_base_url: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise RuntimeError("Media bucket is not configured")
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        # boto3 will pick credentials from env, ~/.aws, or IAM role
        self._client = client or boto3.client("s3", region_name=region)

    def put(self, key: str, data: bytes, content_type: str = VIDEO_CONTENT_TYPE) -> None:
        """Upload (or overwrite) an object."""
        with tracer.start_as_current_span("s3.upload") as span:
            span.set_attribute("s3.key", key)
            span.set_attribute("file.size", len(data))
            logger.info("Uploading to S3: %s (%d bytes)", key, len(data))
            try:
                self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
            except ClientError as e:
                raise _storage_error("upload", key, e) from e

    def get(self, key: str) -> bytes:
        with tracer.start_as_current_span("s3.download") as span:
            span.set_attribute("s3.key", key)
            logger.info("Downloading from S3: %s", key)
            try:
                resp = self._client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    raise NotFoundError(f"Object not found: {key}") from e
                raise _storage_error("download", key, e) from e

            body = resp.get("Body")
            return body.read() if body is not None else b""

    def size(self, key: str) -> int:
        try:
            head = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise NotFoundError(f"Object not found: {key}") from e
            raise _storage_error("head", key, e) from e
        return int(head["ContentLength"])

    def get_range_slice(self, key: str, start: int, end: Optional[int] = None) -> RangeSlice:
        """
        Read bytes [start, end] inclusive. An omitted end runs to the end of
        the object; an end past the object is clamped to the last byte.
        """
        with tracer.start_as_current_span("s3.download_range") as span:
            span.set_attribute("s3.key", key)
            total = self.size(key)

            if start < 0 or start >= total:
                raise InvalidRangeError(f"Range start {start} outside object of {total} bytes", total_size=total)

            last = total - 1 if end is None else min(end, total - 1)
            if last < start:
                raise InvalidRangeError(f"Range end {end} precedes start {start}", total_size=total)

            span.set_attribute("s3.range", f"{start}-{last}")
            try:
                resp = self._client.get_object(Bucket=self.bucket, Key=key, Range=f"bytes={start}-{last}")
            except ClientError as e:
                if _is_missing(e):
                    raise NotFoundError(f"Object not found: {key}") from e
                raise _storage_error("ranged download", key, e) from e

            data = resp["Body"].read()
            return RangeSlice(data=data, start=start, end=last, total_size=total)

    def delete(self, key: str) -> None:
        """Remove an object. Deleting a missing key is not an error."""
        with tracer.start_as_current_span("s3.delete") as span:
            span.set_attribute("s3.key", key)
            try:
                self._client.delete_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    logger.debug("S3 delete for missing key=%s ignored", key)
                    return
                raise _storage_error("delete", key, e) from e
            logger.info("Deleted from S3: %s", key)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
