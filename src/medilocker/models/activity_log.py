"""Activity log model for the audit trail."""

from typing import Any, Dict, Optional

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import ID_LENGTH, BaseModel
from medilocker.models.db_types import JSONType


class ActivityLog(BaseModel):
    """One meaningful action recorded for auditing."""

    __tablename__ = "activity_logs"

    actor_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH))
    details: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("idx_activity_logs_resource", "resource_id"),
        Index("idx_activity_logs_actor", "actor_id", "created_at"),
    )
