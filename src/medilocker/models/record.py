"""Medical record models.

A ``Record`` is one document lineage owned by a patient. Every change to it
is a new immutable ``RecordVersion`` numbered 1..N without gaps, and each
version is mirrored by a ``Commit`` indexed by patient so the whole
cross-record history can be read in one query.
"""

import enum
from datetime import date, datetime
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.core.exceptions import StateError
from medilocker.models.base import ID_LENGTH, BaseModel
from medilocker.models.db_types import JSONType, enum_type
from medilocker.models.profile import UserRole
from medilocker.utils.time import utcnow


class RecordType(str, enum.Enum):
    """Type of medical record."""

    PRESCRIPTION = "prescription"
    LAB_REPORT = "lab_report"
    XRAY = "xray"
    DISCHARGE_SUMMARY = "discharge_summary"
    VACCINATION = "vaccination"
    IMAGING = "imaging"
    OTHER = "other"


class ChangeType(str, enum.Enum):
    """Kind of change a version introduces."""

    INITIAL_UPLOAD = "initial_upload"
    UPDATE = "update"


class Record(BaseModel):
    """A patient's versioned document lineage."""

    __tablename__ = "records"

    patient_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("patient_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    record_type: Mapped[RecordType] = mapped_column(
        enum_type(RecordType), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    issued_by: Mapped[Optional[str]] = mapped_column(String(100))
    issued_date: Mapped[Optional[date]] = mapped_column(Date)

    current_version: Mapped[int] = mapped_column(Integer, nullable=False)
    current_version_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    total_versions: Mapped[int] = mapped_column(Integer, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    __table_args__ = (
        Index("idx_records_patient_type", "patient_id", "record_type"),
        Index("idx_records_patient_updated", "patient_id", "updated_at"),
    )


class RecordVersion(BaseModel):
    """An immutable snapshot of a record."""

    __tablename__ = "record_versions"

    record_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
    )
    patient_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    commit_message: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    author_role: Mapped[UserRole] = mapped_column(enum_type(UserRole), nullable=False)
    change_type: Mapped[ChangeType] = mapped_column(
        enum_type(ChangeType), nullable=False
    )

    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("record_id", "version_number", name="uq_record_version"),
    )


class Commit(BaseModel):
    """Patient-indexed audit projection of a version."""

    __tablename__ = "commits"

    record_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    version_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("record_versions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    patient_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    author_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    author_role: Mapped[UserRole] = mapped_column(enum_type(UserRole), nullable=False)
    commit_message: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[ChangeType] = mapped_column(
        enum_type(ChangeType), nullable=False
    )
    record_type: Mapped[RecordType] = mapped_column(
        enum_type(RecordType), nullable=False
    )
    committed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (Index("idx_commits_patient_time", "patient_id", "committed_at"),)


def reject_update(mapper: Any, connection: Any, target: Any) -> None:
    """Refuse to rewrite an append-only row."""
    _ = mapper
    _ = connection
    raise StateError(f"{target.__class__.__name__} {target.id} is append-only")


for class_ in (RecordVersion, Commit):
    event.listen(class_, "before_update", reject_update)
