"""
Pydantic schemas for deals and their change ledger.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# ============================================================================
# Ledger Schemas
# ============================================================================

class FieldChange(BaseModel):
    """One field's transition within a ledger entry."""
    field: str
    old_value: Any = None
    new_value: Any = None


class ChangeEntryResponse(BaseModel):
    """A ledger entry. acknowledged_by always contains the author."""
    id: Optional[str] = None
    modified_by: str
    changes: List[FieldChange]
    acknowledged_by: List[str] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Deal Schemas
# ============================================================================

class DealBase(BaseModel):
    """Base deal schema with common fields."""
    title: str = Field(..., min_length=1, max_length=255)
    value: float = Field(..., ge=0, description="Budget")
    stage: str = Field("Prospecting", min_length=1, max_length=50)
    contact: Optional[str] = Field(None, max_length=255, description="Point of contact")
    event_date: Optional[datetime] = None
    attendees: Optional[int] = Field(None, ge=0)
    venue: Optional[str] = Field(None, max_length=255)

    @field_validator("event_date")
    @classmethod
    def normalize_event_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class DealCreate(DealBase):
    """Schema for creating a new deal."""
    pass


class DealUpdate(BaseModel):
    """
    Partial update of a deal.

    Only fields that are set are applied. title, value and stage may be
    omitted but never cleared.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    value: Optional[float] = Field(None, ge=0)
    stage: Optional[str] = Field(None, min_length=1, max_length=50)
    contact: Optional[str] = Field(None, max_length=255)
    event_date: Optional[datetime] = None
    attendees: Optional[int] = Field(None, ge=0)
    venue: Optional[str] = Field(None, max_length=255)

    @field_validator("title", "value", "stage")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v

    @field_validator("event_date")
    @classmethod
    def normalize_event_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class DealResponse(DealBase):
    """
    A deal as every viewer sees it.

    has_unseen_changes is computed for the requesting principal and is not
    stored.
    """
    id: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    change_log: List[ChangeEntryResponse] = []
    has_unseen_changes: bool = False

    model_config = ConfigDict(from_attributes=True)


class StageMove(BaseModel):
    stage: str = Field(..., min_length=1, max_length=50)


class UnseenResponse(BaseModel):
    deal_id: str
    has_unseen_changes: bool
    unacknowledged: int
