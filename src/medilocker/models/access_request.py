"""Access request model.

An ``AccessRequest`` is a doctor's consent-gated, time-bounded grant on one
patient's records. Status values are persisted as their canonical strings
and the database allows at most one open (pending or approved) request per
(doctor, patient) pair.
"""

import enum
from datetime import datetime
from typing import FrozenSet, List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import ID_LENGTH, BaseModel
from medilocker.models.db_types import JSONType, enum_type
from medilocker.utils.time import utcnow

# Scope entry granting every record type
RECORD_TYPE_WILDCARD = "all"


class AccessLevel(str, enum.Enum):
    """What a grant lets the doctor do."""

    READ = "read"
    READ_WRITE = "read_write"


class AccessMode(str, enum.Enum):
    """What a caller is attempting."""

    READ = "read"
    WRITE = "write"


class AccessStatus(str, enum.Enum):
    """Lifecycle state of an access request."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVOKED = "revoked"
    EXPIRED = "expired"


OPEN_STATUSES: FrozenSet[AccessStatus] = frozenset(
    {AccessStatus.PENDING, AccessStatus.APPROVED}
)

_OPEN_PAIR_PREDICATE = text("status IN ('pending', 'approved')")


class AccessRequest(BaseModel):
    """A doctor's request for access to a patient's records."""

    __tablename__ = "access_requests"

    doctor_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    access_level: Mapped[AccessLevel] = mapped_column(
        enum_type(AccessLevel), nullable=False, default=AccessLevel.READ
    )
    record_types: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    expiry_days: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[AccessStatus] = mapped_column(
        enum_type(AccessStatus), nullable=False, default=AccessStatus.PENDING
    )
    is_expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    note: Mapped[Optional[str]] = mapped_column(String(300))

    __table_args__ = (
        Index(
            "uq_access_requests_open_pair",
            "doctor_id",
            "patient_id",
            unique=True,
            sqlite_where=_OPEN_PAIR_PREDICATE,
            postgresql_where=_OPEN_PAIR_PREDICATE,
        ),
        Index("idx_access_requests_status_expiry", "status", "expires_at"),
    )

    @property
    def is_open(self) -> bool:
        """Check if the request still blocks a new one for the same pair."""
        return self.status in OPEN_STATUSES

    def is_active_at(self, moment: datetime) -> bool:
        """Check if the grant is approved and inside its validity window."""
        return (
            self.status == AccessStatus.APPROVED
            and not self.is_expired
            and self.expires_at is not None
            and self.expires_at > moment
        )

    def allows_mode(self, mode: AccessMode) -> bool:
        """Check if the access level covers the attempted mode."""
        if mode == AccessMode.WRITE:
            return self.access_level == AccessLevel.READ_WRITE
        return True

    def covers(self, record_type: str) -> bool:
        """Check if the scope covers a record type, or ``all`` for every type."""
        granted = set(self.record_types or [])
        if record_type == RECORD_TYPE_WILDCARD:
            return RECORD_TYPE_WILDCARD in granted
        return RECORD_TYPE_WILDCARD in granted or record_type in granted
