"""Base blob storage abstraction.

Version content lives outside the database under keys of the form
``records/<patient>/<record>/<version>.<ext>``. Backends only store bytes
and hand out temporary read handles; authorization happens before they
are called.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from medilocker.core.exceptions import TransientCollaboratorError
from medilocker.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    """Bytes read back from storage."""

    key: str
    data: bytes
    content_type: str


def build_storage_key(
    patient_id: str, record_id: str, version_id: str, extension: str
) -> str:
    """Build the storage key for one version's content."""
    extension = (extension or "bin").lstrip(".").lower()
    return f"records/{patient_id}/{record_id}/{version_id}.{extension}"


def compute_checksum(data: bytes) -> str:
    """Calculate the SHA-256 checksum of content."""
    return hashlib.sha256(data).hexdigest()


class BlobStore(ABC):
    """Abstract base class for blob storage backends."""

    def __init__(self, max_attempts: int = 3, timeout_seconds: float = 10.0):
        """Initialize retry and timeout limits shared by all backends."""
        self.max_attempts = max(1, max_attempts)
        self.timeout_seconds = timeout_seconds

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store content under ``key``, retrying transient failures.

        Returns:
            The key the content was stored under

        Raises:
            TransientCollaboratorError: if every attempt timed out or the
                backend stayed unavailable
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(TransientCollaboratorError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                self._put(key, data, content_type)

        logger.info("blob_stored", key=key, size=len(data))
        return key

    @abstractmethod
    def _put(self, key: str, data: bytes, content_type: str) -> None:
        """Write content once."""

    @abstractmethod
    def get(self, key: str) -> StoredBlob:
        """Read content back.

        Raises:
            NotFoundError: if nothing is stored under ``key``
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if content is stored under ``key``."""

    @abstractmethod
    def get_temporary_read_handle(
        self, key: str, ttl_seconds: int, file_name: Optional[str] = None
    ) -> str:
        """Return a handle that lets the holder read ``key`` until it lapses."""
