# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, TypeVar
from pydantic import BaseModel, Field, ConfigDict
from bson import ObjectId

E = TypeVar("E", bound="BaseEntity")


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True,
        # Store documents carry bookkeeping keys we do not model
        extra="ignore"
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update timestamp")
    created_by: Optional[str] = Field(None, description="User ID who created this entity")
    updated_by: Optional[str] = Field(None, description="User ID who last updated this entity")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def with_updates(self: E, updates: Dict[str, Any], updated_by: Optional[str] = None) -> E:
        """
        Return a validated copy with the given field updates applied.

        Raises:
            pydantic.ValidationError: If the resulting entity breaks an invariant
        """
        data = self.model_dump()
        data.update(updates)
        if updated_by is not None:
            data["updated_by"] = updated_by
        return type(self).model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the entity store."""
        return self.model_dump()


class BaseEntityCreate(BaseModel):
    """Base model for entity creation requests."""

    model_config = ConfigDict(
        use_enum_values=True,
        validate_assignment=True,
        str_strip_whitespace=True
    )
