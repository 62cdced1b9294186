"""Blob storage backends for record content."""

from typing import Optional

from medilocker.config import Settings, get_settings
from medilocker.storage.base import (
    BlobStore,
    StoredBlob,
    build_storage_key,
    compute_checksum,
)
from medilocker.storage.local_backend import LocalBlobStore
from medilocker.storage.s3_backend import S3BlobStore
from medilocker.utils.time import Clock, utcnow


def build_blob_store(settings: Optional[Settings] = None, clock: Clock = utcnow) -> BlobStore:
    """Create the blob store selected by ``storage_backend``."""
    settings = settings or get_settings()
    if settings.storage_backend == "s3":
        return S3BlobStore(
            bucket_name=settings.s3_bucket_name,
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            max_attempts=settings.collaborator_max_attempts,
            timeout_seconds=settings.collaborator_timeout_seconds,
        )
    return LocalBlobStore(
        base_path=settings.local_storage_path,
        signing_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        clock=clock,
        max_attempts=settings.collaborator_max_attempts,
        timeout_seconds=settings.collaborator_timeout_seconds,
    )


__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "StoredBlob",
    "build_blob_store",
    "build_storage_key",
    "compute_checksum",
]
