"""Base model classes for database models."""

from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import DateTime, String, inspect
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from medilocker.utils.id_generator import generate_id
from medilocker.utils.time import utcnow

Base: Any = declarative_base()

ID_LENGTH = 128


class TimestampMixin:
    """Mixin for adding timestamp fields to models."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class BaseModel(Base, TimestampMixin):
    """Base model class with common fields."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(ID_LENGTH), primary_key=True, default=generate_id
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        result = {}
        for attribute in inspect(self).mapper.column_attrs:
            value = getattr(self, attribute.key)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif hasattr(value, "value"):
                value = value.value
            result[attribute.key] = value
        return result

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<{self.__class__.__name__}(id={self.id})>"
