"""Schemas for case-insensitive duplicate name detection."""

from __future__ import annotations

from pydantic import Field

from backforge_schemas.base import FrozenSchema


class DuplicateNameIssue(FrozenSchema):
    """A name that collides case-insensitively with its canonical form."""

    path: str = Field(..., min_length=1, description="Location of the variant")
    value: str = Field(..., min_length=1, description="Non-canonical variant")
    canonical: str = Field(..., min_length=1, description="Canonical form")
    expected: str = Field(..., min_length=1, description="Expected value")
    message: str = Field(..., min_length=1, description="Corrective guidance")
