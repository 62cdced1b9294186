"""Patient and doctor profile models.

``PatientProfile`` carries the patient's aggregate counters. ``DoctorProfile``
and its satellite tables hold the contribution statistics that only the
contribution aggregator writes.
"""

import enum
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medilocker.models.base import ID_LENGTH, Base, BaseModel
from medilocker.models.db_types import JSONType


class UserRole(str, enum.Enum):
    """Role of an authenticated caller."""

    PATIENT = "patient"
    DOCTOR = "doctor"


class PatientProfile(BaseModel):
    """A patient: owner of a repository of records."""

    __tablename__ = "patient_profiles"

    display_name: Mapped[str] = mapped_column(String(80), nullable=False)

    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_versions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_collaborators: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )


class DoctorProfile(BaseModel):
    """A doctor and the reputation signals derived from their activity."""

    __tablename__ = "doctor_profiles"

    display_name: Mapped[str] = mapped_column(String(80), nullable=False)
    specialization: Mapped[Optional[str]] = mapped_column(String(100))
    license_number: Mapped[Optional[str]] = mapped_column(String(50))
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_cases_handled: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    active_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_records_added: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_records_updated: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    average_response_time_hours: Mapped[Optional[float]] = mapped_column(Float)
    record_accuracy_score: Mapped[Optional[int]] = mapped_column(Integer)
    condition_tags: Mapped[List[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Optimistic concurrency for read-modify-write statistics
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    skill_counts: Mapped[List["SkillEndorsementCount"]] = relationship(
        lazy="selectin", order_by="SkillEndorsementCount.skill"
    )

    __mapper_args__ = {"version_id_col": row_version}

    @property
    def endorsement_counts(self) -> Dict[str, int]:
        """Endorsement totals keyed by skill label."""
        return {entry.skill: entry.count for entry in self.skill_counts}

    @property
    def total_endorsements(self) -> int:
        """Sum of endorsements across all skills."""
        return sum(entry.count for entry in self.skill_counts)


class ActivityDay(Base):
    """One cell of a doctor's contribution graph."""

    __tablename__ = "doctor_activity_days"

    doctor_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("doctor_profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    day: Mapped[str] = mapped_column(String(10), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SkillEndorsementCount(Base):
    """Running endorsement count for one (doctor, skill) pair."""

    __tablename__ = "doctor_skill_endorsements"

    doctor_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("doctor_profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    skill: Mapped[str] = mapped_column(String(100), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Endorsement(BaseModel):
    """A peer endorsement of one doctor by another."""

    __tablename__ = "endorsements"

    endorser_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    target_doctor_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("doctor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    skill: Mapped[str] = mapped_column(String(100), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "endorser_id", "target_doctor_id", "skill", name="uq_endorsement_once"
        ),
    )
