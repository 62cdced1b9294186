"""Notification database model."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import ID_LENGTH, BaseModel
from medilocker.models.db_types import JSONType


class Notification(BaseModel):
    """A message delivered to a patient or doctor."""

    __tablename__ = "notifications"

    recipient_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_notifications_recipient", "recipient_id", "is_read"),
    )
