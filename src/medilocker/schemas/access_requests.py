"""Input schemas for access requests."""

from typing import List, Optional

from pydantic import Field, field_validator

from medilocker.models.access_request import RECORD_TYPE_WILDCARD, AccessLevel
from medilocker.models.record import RecordType
from medilocker.schemas.base import BaseSchema

VALID_SCOPE_ENTRIES = frozenset(
    [record_type.value for record_type in RecordType] + [RECORD_TYPE_WILDCARD]
)


class AccessRequestCreate(BaseSchema):
    """A doctor's request for access to one patient's records."""

    patient_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=10, max_length=500)
    access_level: AccessLevel = AccessLevel.READ
    record_types: List[str] = Field(..., min_length=1)
    expiry_days: int = Field(30, ge=1, le=365)

    @field_validator("record_types")
    @classmethod
    def validate_record_types(cls, value: List[str]) -> List[str]:
        """Accept known record types or ``all``; collapse duplicates."""
        scope: List[str] = []
        for entry in value:
            entry = entry.value if isinstance(entry, RecordType) else entry
            if entry not in VALID_SCOPE_ENTRIES:
                raise ValueError(f"unknown record type: {entry}")
            if entry not in scope:
                scope.append(entry)
        return scope


class AccessResponse(BaseSchema):
    """A patient's answer to a pending request."""

    approved: bool
    note: Optional[str] = Field(None, max_length=300)
