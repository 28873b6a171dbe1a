"""
Blob Store
==========

Key-value object storage used by the archive writer.

Implementations:
    - S3BlobStore: boto3 client against any S3-compatible endpoint
      (DigitalOcean Spaces, Wasabi, AWS)
    - InMemoryBlobStore: process-local store for tests and local runs

Conditional Writes:
    put() accepts if_match (ETag the object must currently have) and
    if_none_match (object must not exist). A failed precondition raises
    StoreConflictError so callers can re-read and retry.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError


logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a storage operation fails."""
    pass


class StoreConflictError(StoreError):
    """Raised when a conditional write's precondition does not hold."""
    pass


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Object body plus version metadata."""

    data: bytes
    etag: str
    last_modified: datetime


@dataclass(frozen=True, slots=True)
class ObjectInfo:
    """Listing entry."""

    key: str
    last_modified: datetime
    size: int


class BlobStore(Protocol):
    """
    Interface for object storage operations.
    Use Protocol for structural typing - implementations don't need to inherit.
    """

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        """
        Store an object.

        Args:
            key: Object key
            data: Object body
            content_type: MIME type
            if_match: Only write if the current ETag equals this
            if_none_match: Only write if no object exists at key

        Returns:
            ETag of the written object

        Raises:
            StoreConflictError: Precondition failed
            StoreError: Any other storage failure
        """
        ...

    def get(self, key: str) -> Optional[StoredObject]:
        """
        Fetch an object.

        Returns:
            StoredObject, or None if the key does not exist
        """
        ...

    def list(self, prefix: str, max_keys: Optional[int] = None) -> List[ObjectInfo]:
        """
        List objects under a prefix.

        Args:
            prefix: Key prefix
            max_keys: Stop after this many entries (None = all)
        """
        ...


# =============================================================================
# In-memory backend
# =============================================================================

def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class InMemoryBlobStore:
    """
    Thread-safe process-local BlobStore.

    Mirrors S3 semantics the archive relies on: overwrite on put,
    quoted MD5 ETags, conditional writes, lexicographic listing.
    """

    def __init__(self) -> None:
        self._objects: Dict[str, StoredObject] = {}
        self._content_types: Dict[str, str] = {}
        self._lock = threading.Lock()

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        with self._lock:
            current = self._objects.get(key)
            if if_none_match and current is not None:
                raise StoreConflictError(f"Object already exists: {key}")
            if if_match is not None and (current is None or current.etag != if_match):
                raise StoreConflictError(f"ETag mismatch for {key}")

            etag = _etag(data)
            self._objects[key] = StoredObject(
                data=bytes(data),
                etag=etag,
                last_modified=datetime.now(timezone.utc),
            )
            self._content_types[key] = content_type
            return etag

    def get(self, key: str) -> Optional[StoredObject]:
        with self._lock:
            return self._objects.get(key)

    def list(self, prefix: str, max_keys: Optional[int] = None) -> List[ObjectInfo]:
        with self._lock:
            infos = [
                ObjectInfo(key=key, last_modified=obj.last_modified, size=len(obj.data))
                for key, obj in sorted(self._objects.items())
                if key.startswith(prefix)
            ]
        if max_keys is not None:
            infos = infos[:max_keys]
        return infos

    def content_type(self, key: str) -> Optional[str]:
        with self._lock:
            return self._content_types.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


# =============================================================================
# S3 backend
# =============================================================================

_CONFLICT_CODES = {"PreconditionFailed", "ConditionalRequestConflict"}
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore:
    """Client for S3-compatible object storage."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        public_read: bool = False,
        client=None,
    ) -> None:
        """
        Initialize S3 client.

        Args:
            bucket: Bucket name
            endpoint_url: S3-compatible endpoint (None = AWS default)
            region: Bucket region
            access_key: Access key id (None = default credential chain)
            secret_key: Secret access key
            public_read: Apply the public-read ACL to frame uploads
            client: Pre-built boto3 S3 client (tests)
        """
        self.bucket = bucket
        self.public_read = public_read
        self.s3_client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(signature_version="s3v4"),
        )
        logger.info(f"S3BlobStore initialized: bucket={bucket}, endpoint={endpoint_url}")

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if self.public_read and content_type.startswith("image/"):
            params["ACL"] = "public-read"
        if if_match is not None:
            params["IfMatch"] = if_match
        if if_none_match:
            params["IfNoneMatch"] = "*"

        try:
            response = self.s3_client.put_object(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _CONFLICT_CODES:
                raise StoreConflictError(f"Conditional write failed for {key}: {code}") from e
            raise StoreError(f"Failed to put {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to put {key}: {e}") from e

        return response.get("ETag", "")

    def get(self, key: str) -> Optional[StoredObject]:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                return None
            raise StoreError(f"Failed to get {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to get {key}: {e}") from e

        return StoredObject(
            data=data,
            etag=response.get("ETag", ""),
            last_modified=response.get("LastModified") or datetime.now(timezone.utc),
        )

    def list(self, prefix: str, max_keys: Optional[int] = None) -> List[ObjectInfo]:
        infos: List[ObjectInfo] = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    infos.append(
                        ObjectInfo(
                            key=obj["Key"],
                            last_modified=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
                    if max_keys is not None and len(infos) >= max_keys:
                        return infos
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to list {prefix}: {e}") from e
        return infos
