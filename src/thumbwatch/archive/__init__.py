"""
Archive Module
==============

Object storage and the archive writer.

Components:
    - BlobStore: storage protocol (S3BlobStore, InMemoryBlobStore)
    - ArchiveWriter: frame blobs + daily structured log
"""

from thumbwatch.archive.store import (
    BlobStore,
    InMemoryBlobStore,
    ObjectInfo,
    S3BlobStore,
    StoreConflictError,
    StoreError,
    StoredObject,
)
from thumbwatch.archive.writer import ArchiveError, ArchiveWriter


__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "ObjectInfo",
    "S3BlobStore",
    "StoreConflictError",
    "StoreError",
    "StoredObject",
    "ArchiveError",
    "ArchiveWriter",
]
