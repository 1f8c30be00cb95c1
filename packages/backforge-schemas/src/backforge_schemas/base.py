"""Base schema configuration for backforge Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with strict validation defaults.

    Note: extra="ignore" lets models answer function calls with additional
    fields without failing validation. Required fields are still validated.
    """

    model_config = ConfigDict(
        extra="ignore",  # Drop extra fields instead of failing
        validate_assignment=True,
        validate_default=True,
        str_strip_whitespace=True,
        use_enum_values=True,
        strict=True,
    )


class FrozenSchema(BaseSchema):
    """Base schema for immutable records (artifacts, history entries)."""

    model_config = ConfigDict(frozen=True)
