"""Database models for Medilocker."""

from medilocker.models.access_request import (
    RECORD_TYPE_WILDCARD,
    AccessLevel,
    AccessMode,
    AccessRequest,
    AccessStatus,
)
from medilocker.models.activity_log import ActivityLog
from medilocker.models.base import Base, BaseModel
from medilocker.models.notification import Notification
from medilocker.models.profile import (
    ActivityDay,
    DoctorProfile,
    Endorsement,
    PatientProfile,
    SkillEndorsementCount,
    UserRole,
)
from medilocker.models.record import ChangeType, Commit, Record, RecordType, RecordVersion

__all__ = [
    "RECORD_TYPE_WILDCARD",
    "AccessLevel",
    "AccessMode",
    "AccessRequest",
    "AccessStatus",
    "ActivityDay",
    "ActivityLog",
    "Base",
    "BaseModel",
    "ChangeType",
    "Commit",
    "DoctorProfile",
    "Endorsement",
    "Notification",
    "PatientProfile",
    "Record",
    "RecordType",
    "RecordVersion",
    "SkillEndorsementCount",
    "UserRole",
]
