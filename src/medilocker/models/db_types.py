"""Database type compatibility layer for PostgreSQL and SQLite."""

import enum
from typing import Any, Type

from sqlalchemy import JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB as PostgreSQLJSONB

# JSONB on PostgreSQL, plain JSON everywhere else
JSONType: Any = JSON().with_variant(PostgreSQLJSONB(), "postgresql")


def enum_type(enum_class: Type[enum.Enum]) -> Enum:
    """Persist an enum by its canonical value rather than its member name."""
    return Enum(
        enum_class,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        validate_strings=True,
        length=32,
    )
