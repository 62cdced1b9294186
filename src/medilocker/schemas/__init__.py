"""Input validation schemas."""

from medilocker.schemas.access_requests import AccessRequestCreate, AccessResponse
from medilocker.schemas.base import BaseSchema, parse_model
from medilocker.schemas.endorsements import (
    DoctorRegistration,
    EndorsementCreate,
    PatientRegistration,
)
from medilocker.schemas.records import RecordMetadata, UploadedFile, VersionContent

__all__ = [
    "AccessRequestCreate",
    "AccessResponse",
    "BaseSchema",
    "DoctorRegistration",
    "EndorsementCreate",
    "PatientRegistration",
    "RecordMetadata",
    "UploadedFile",
    "VersionContent",
    "parse_model",
]
