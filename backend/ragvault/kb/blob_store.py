"""
Blob store adapters for raw uploaded bytes.

The knowledge base only needs three operations from a blob store: write
bytes and get back an opaque storage id, turn a storage id into a
retrievable URL, and delete by storage id. Deletes are idempotent so a
retried cascading delete is safe.

Dependencies: boto3 (S3 backend)
"""

import json
import logging
import re
import uuid
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ragvault.core.errors import TransientIOError

logger = logging.getLogger(__name__)

_STORAGE_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class BlobStore(Protocol):
    def store(self, data: bytes, content_type: str) -> str:
        ...

    def get_url(self, storage_id: str) -> str | None:
        ...

    def delete(self, storage_id: str) -> None:
        ...


def new_storage_id() -> str:
    return uuid.uuid4().hex


def is_valid_storage_id(storage_id: str) -> bool:
    return bool(_STORAGE_ID_RE.match(storage_id or ""))


class LocalBlobStore:
    """Filesystem-backed blob store; URLs point at the API's blob download route."""

    def __init__(self, root_dir: str | Path, public_base_url: str) -> None:
        self._root = Path(root_dir)
        self._public_base_url = public_base_url.rstrip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    def _paths(self, storage_id: str) -> tuple[Path, Path]:
        if not is_valid_storage_id(storage_id):
            raise ValueError(f"Invalid storage id: {storage_id!r}")
        return self._root / storage_id, self._root / f"{storage_id}.json"

    def store(self, data: bytes, content_type: str) -> str:
        storage_id = new_storage_id()
        blob_path, meta_path = self._paths(storage_id)
        try:
            blob_path.write_bytes(data)
            meta_path.write_text(json.dumps({"content_type": content_type, "size": len(data)}))
        except OSError as e:
            blob_path.unlink(missing_ok=True)
            raise TransientIOError(f"Failed to write blob: {e}") from e

        logger.info(f"Stored blob {storage_id} ({len(data)} bytes, {content_type})")
        return storage_id

    def get_url(self, storage_id: str) -> str | None:
        if not self.exists(storage_id):
            return None
        return f"{self._public_base_url}/{storage_id}"

    def exists(self, storage_id: str) -> bool:
        if not is_valid_storage_id(storage_id):
            return False
        blob_path, _ = self._paths(storage_id)
        return blob_path.is_file()

    def open(self, storage_id: str) -> tuple[Path, str] | None:
        """Return (path, content_type) for a stored blob, or None if absent."""
        if not self.exists(storage_id):
            return None
        blob_path, meta_path = self._paths(storage_id)
        content_type = "application/octet-stream"
        if meta_path.is_file():
            content_type = json.loads(meta_path.read_text()).get("content_type", content_type)
        return blob_path, content_type

    def delete(self, storage_id: str) -> None:
        blob_path, meta_path = self._paths(storage_id)
        try:
            blob_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)
        except OSError as e:
            raise TransientIOError(f"Failed to delete blob {storage_id}: {e}") from e
        logger.info(f"Deleted blob {storage_id}")


class S3BlobStore:
    """S3-backed blob store; URLs are presigned GET links."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        url_expires_in: int = 3600,
        key_prefix: str = "blobs/",
        s3_client=None,
    ) -> None:
        """
        Initialize S3 client for blob storage.

        Args:
            bucket: S3 bucket name
            region: AWS region for the bucket
            url_expires_in: Presigned URL expiry in seconds
            key_prefix: Prefix for object keys
            s3_client: Pre-built boto3 client (tests)
        """
        self._bucket = bucket
        self._url_expires_in = url_expires_in
        self._key_prefix = key_prefix
        self._s3_client = s3_client or boto3.client("s3", region_name=region)

    def _key(self, storage_id: str) -> str:
        if not is_valid_storage_id(storage_id):
            raise ValueError(f"Invalid storage id: {storage_id!r}")
        return f"{self._key_prefix}{storage_id}"

    def store(self, data: bytes, content_type: str) -> str:
        storage_id = new_storage_id()
        try:
            self._s3_client.put_object(
                Bucket=self._bucket,
                Key=self._key(storage_id),
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientIOError(f"Failed to write blob to S3: {e}") from e

        logger.info(f"Stored blob {storage_id} in s3://{self._bucket} ({len(data)} bytes)")
        return storage_id

    def get_url(self, storage_id: str) -> str | None:
        try:
            return self._s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self._bucket, "Key": self._key(storage_id)},
                ExpiresIn=self._url_expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise TransientIOError(f"Failed to sign blob URL: {e}") from e

    def delete(self, storage_id: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        try:
            self._s3_client.delete_object(Bucket=self._bucket, Key=self._key(storage_id))
        except (ClientError, BotoCoreError) as e:
            raise TransientIOError(f"Failed to delete blob {storage_id}: {e}") from e
        logger.info(f"Deleted blob {storage_id} from s3://{self._bucket}")
