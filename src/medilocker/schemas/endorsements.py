"""Input schemas for peer endorsements."""

from typing import Optional

from pydantic import Field

from medilocker.schemas.base import BaseSchema


class EndorsementCreate(BaseSchema):
    """A verified doctor vouching for a peer's skill."""

    skill: str = Field(..., min_length=2, max_length=100)
    note: Optional[str] = Field(None, max_length=400)


class DoctorRegistration(BaseSchema):
    """Profile details captured when a doctor signs up."""

    display_name: str = Field(..., min_length=2, max_length=80)
    specialization: str = Field(..., min_length=2, max_length=100)
    license_number: Optional[str] = Field(None, min_length=4, max_length=50)


class PatientRegistration(BaseSchema):
    """Profile details captured when a patient signs up."""

    display_name: str = Field(..., min_length=2, max_length=80)
