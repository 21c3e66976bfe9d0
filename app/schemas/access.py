from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.lifecycle import ModuleKind


class AccessTokenCreate(BaseModel):
    expires_in_days: int | None = Field(default=None, ge=1)
    label: str | None = Field(default=None, max_length=255)


class AccessTokenRevoke(BaseModel):
    reason: str | None = None


class AccessTokenRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    token: str
    label: str | None = None
    expires_at: datetime
    revoked_at: datetime | None = None
    revoked_by: UUID | None = None
    revoke_reason: str | None = None
    access_count: int
    last_accessed_at: datetime | None = None
    created_by: UUID
    created_at: datetime


class PublicDocumentSummary(BaseModel):
    """What an external recipient may see. No tenant or actor identifiers."""

    title: str
    document_type: ModuleKind
    version_number: int
    issued_at: datetime | None = None
    assessment_date: date | None = None
    summary_rating: str | None = None
    has_pdf: bool
