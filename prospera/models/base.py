"""Shared base for user-owned rows."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class UserOwnedRow(BaseModel):
    """
    Columns every table carries.

    Rows come straight from the store, so unknown columns are ignored
    rather than rejected.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: UUID = Field(
        default_factory=uuid4,
        description="Row identifier"
    )
    user_id: UUID = Field(
        ...,
        description="Owning user (row-level security key)"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )

    @model_validator(mode='before')
    @classmethod
    def null_columns_use_defaults(cls, data: Any) -> Any:
        """A NULL column falls back to the field default when it has one."""
        if not isinstance(data, dict):
            return data
        return {
            key: value for key, value in data.items()
            if value is not None
            or key not in cls.model_fields
            or cls.model_fields[key].is_required()
        }

    def to_row(self) -> dict:
        """JSON-safe dict ready for insert."""
        return self.model_dump(mode="json")
