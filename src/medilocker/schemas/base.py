"""Base Pydantic models for input validation."""

from typing import Any, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from medilocker.core.exceptions import ValidationError

SchemaT = TypeVar("SchemaT", bound="BaseSchema")


class BaseSchema(BaseModel):
    """Base model for all input schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_default=True,
        extra="forbid",
    )


def describe_errors(exc: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable message."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "input"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def parse_model(
    schema: Type[SchemaT], data: Union[SchemaT, Mapping[str, Any]]
) -> SchemaT:
    """Validate raw input against a schema, raising the domain ValidationError."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(describe_errors(exc)) from exc
