"""
Asset storage for problem images: S3-compatible object storage and an
in-memory test double.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlsplit
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from crowdsolve.errors import UploadFailed
from crowdsolve.images import normalize_image

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    """Defines the operations the API needs from image storage."""

    def upload(self, data: bytes) -> str:
        ...

    def delete(self, reference: str) -> None:
        ...


def public_id_from_reference(reference: str) -> str:
    """
    Return the storage object id encoded in an asset reference.

    The id is the trailing path segment with any query string and file
    extension removed, so ``https://cdn/x/crowdsolve/abc.jpg?v=1`` yields
    ``abc``.
    """
    path = urlsplit(reference).path or reference
    segment = path.rstrip("/").split("/")[-1]
    return segment.split(".")[0]


@dataclass
class InMemoryAssetStore:
    """Test double for asset storage interactions."""

    base_url: str = "https://example.test/assets"
    folder: str = "crowdsolve"
    objects: dict = None
    deleted: list = None
    fail_uploads: bool = False
    fail_deletes: bool = False

    def __post_init__(self):
        if self.objects is None:
            self.objects = {}
        if self.deleted is None:
            self.deleted = []

    def upload(self, data: bytes) -> str:
        if self.fail_uploads:
            raise UploadFailed(detail="Simulated upload failure")
        public_id = uuid4().hex
        self.objects[public_id] = data
        return f"{self.base_url}/{self.folder}/{public_id}"

    def delete(self, reference: str) -> None:
        self.deleted.append(reference)
        if self.fail_deletes:
            logger.warning("Simulated failure deleting asset %s", reference)
            return
        self.objects.pop(public_id_from_reference(reference), None)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.objects.clear()
        self.deleted.clear()


@dataclass
class S3AssetStore:
    """
    S3-compatible asset store.

    Images are bounded with :func:`normalize_image` before upload and stored
    under ``{folder}/{public_id}``. The returned reference is a public URL
    whose last path segment is the public id.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    public_base_url: Optional[str] = None
    folder: str = "crowdsolve"
    max_width: int = 1200
    max_height: int = 800
    quality: int = 85
    connect_timeout: float = 5.0
    read_timeout: float = 30.0

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"total_max_attempts": 1},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        if not self.public_base_url:
            self.public_base_url = self._default_base_url()

    def _default_base_url(self) -> str:
        if self.endpoint:
            parts = urlsplit(self.endpoint)
            return f"{parts.scheme or 'https'}://{self.bucket}.{parts.netloc or parts.path}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com"

    def _key(self, public_id: str) -> str:
        return f"{self.folder}/{public_id}"

    def upload(self, data: bytes) -> str:
        body, content_type = normalize_image(
            data,
            max_width=self.max_width,
            max_height=self.max_height,
            quality=self.quality,
        )
        public_id = uuid4().hex
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._key(public_id),
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Asset upload to %s failed", self.bucket)
            raise UploadFailed(detail=str(exc)) from exc
        reference = f"{self.public_base_url.rstrip('/')}/{self._key(public_id)}"
        logger.info("Uploaded asset %s (%d bytes)", reference, len(body))
        return reference

    def delete(self, reference: str) -> None:
        key = self._key(public_id_from_reference(reference))
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError):
            # Leaves an orphaned object behind; the record operation goes on.
            logger.exception("Error deleting asset %s", reference)
            return
        logger.info("Deleted asset %s", reference)
