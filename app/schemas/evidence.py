from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EvidenceBase(BaseModel):
    storage_path: str = Field(min_length=1, max_length=1024)
    file_name: str = Field(min_length=1, max_length=500)
    mime_type: str = Field(min_length=1, max_length=255)
    size_bytes: int | None = Field(default=None, ge=0)
    caption: str | None = None
    module_key: str | None = Field(default=None, max_length=120)
    action_id: UUID | None = None


class EvidenceCreate(EvidenceBase):
    pass


class EvidenceUpdate(BaseModel):
    caption: str | None = None
    module_key: str | None = Field(default=None, max_length=120)
    action_id: UUID | None = None


class EvidenceRead(EvidenceBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    family_id: UUID
    carried_from_document_id: UUID | None = None
    uploaded_by: UUID
    created_at: datetime
    updated_at: datetime


class EvidenceUploadRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=500)
    mime_type: str = Field(min_length=1, max_length=255)


class EvidenceUploadResponse(BaseModel):
    storage_path: str
    upload_url: str
