"""Input schemas for records and versions."""

import mimetypes
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from pydantic import Field, field_validator

from medilocker.core.exceptions import ValidationError
from medilocker.models.record import RecordType
from medilocker.schemas.base import BaseSchema
from medilocker.storage.base import compute_checksum


class RecordMetadata(BaseSchema):
    """Descriptive metadata supplied when a record is first uploaded."""

    title: str = Field(..., min_length=2, max_length=200)
    record_type: RecordType
    commit_message: str = Field(..., min_length=1)
    description: Optional[str] = Field(None, max_length=1000)
    tags: List[str] = Field(default_factory=list, max_length=10)
    issued_by: Optional[str] = Field(None, max_length=100)
    issued_date: Optional[date] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: List[str]) -> List[str]:
        """Strip, drop blanks and de-duplicate tags, keeping their order."""
        cleaned: List[str] = []
        for tag in value:
            tag = tag.strip()
            if len(tag) > 50:
                raise ValueError("tags must be at most 50 characters")
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned


@dataclass(frozen=True)
class UploadedFile:
    """A file received from the caller, before it reaches blob storage."""

    file_name: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        """Size of the payload in bytes."""
        return len(self.data)

    @property
    def extension(self) -> str:
        """Lower-case extension of the original name, without the dot."""
        _, dot, ext = self.file_name.rpartition(".")
        return ext.lower() if dot and ext else "bin"

    @property
    def media_type(self) -> str:
        """Declared content type, or one guessed from the file name."""
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.file_name)
        return guessed or "application/octet-stream"

    @property
    def checksum(self) -> str:
        """SHA-256 of the payload."""
        return compute_checksum(self.data)

    def validate(self, max_bytes: int) -> None:
        """Reject empty, unnamed or oversized uploads."""
        if not self.file_name or not self.file_name.strip():
            raise ValidationError("File name is required.")
        if not self.data:
            raise ValidationError("File is required.")
        if self.size > max_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB."
            )


@dataclass(frozen=True)
class VersionContent:
    """Where a version's bytes live and what they are."""

    storage_key: str
    file_name: str
    file_size: int
    mime_type: str
    checksum: str

    @classmethod
    def from_upload(cls, storage_key: str, upload: UploadedFile) -> "VersionContent":
        """Describe an upload that has been written under ``storage_key``."""
        return cls(
            storage_key=storage_key,
            file_name=upload.file_name,
            file_size=upload.size,
            mime_type=upload.media_type,
            checksum=upload.checksum,
        )
