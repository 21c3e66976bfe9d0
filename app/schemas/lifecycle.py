from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.lifecycle import DocumentStatus, ModuleKind


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class DocumentBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    document_type: ModuleKind
    enabled_modules: list[ModuleKind] | None = None
    assessment_date: date | None = None
    summary_rating: str | None = Field(default=None, max_length=50)
    metadata_: dict[str, Any] | None = Field(default=None, alias="metadata_")


class DocumentCreate(DocumentBase):
    pass


class DocumentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    enabled_modules: list[ModuleKind] | None = None
    assessment_date: date | None = None
    summary_rating: str | None = Field(default=None, max_length=50)
    metadata_: dict[str, Any] | None = Field(default=None, alias="metadata_")


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    family_id: UUID
    version_number: int
    status: DocumentStatus
    assessment_date: date
    issued_at: datetime | None = None
    issued_by: UUID | None = None
    superseded_at: datetime | None = None
    superseded_by_document_id: UUID | None = None
    locked_pdf_reference: str | None = None
    locked_pdf_checksum: str | None = None
    locked_pdf_size: int | None = None
    locked_pdf_generated_at: datetime | None = None
    pdf_generation_error: str | None = None
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class VersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version_number: int
    status: DocumentStatus
    title: str
    issued_at: datetime | None = None
    issued_by: UUID | None = None
    superseded_at: datetime | None = None
    superseded_by_document_id: UUID | None = None
    created_at: datetime


class LockStatusRead(BaseModel):
    document_id: UUID
    status: DocumentStatus
    editable: bool
    reason: str | None = None


class FamilyHealthRead(BaseModel):
    family_id: UUID
    total_versions: int
    draft_count: int
    issued_count: int
    superseded_count: int
    latest_version_number: int | None = None
    latest_issued_version_number: int | None = None
    issued_without_locked_pdf: int = 0
    problems: list[str] = Field(default_factory=list)
    healthy: bool


# ---------------------------------------------------------------------------
# Forking & issuance
# ---------------------------------------------------------------------------


class ForkRequest(BaseModel):
    carry_forward_evidence: bool = True


class ForkRead(BaseModel):
    document: DocumentRead
    carried_actions: int
    carried_evidence: int
    warnings: list[str] = Field(default_factory=list)


class ReadinessRead(BaseModel):
    document_id: UUID
    ready: bool
    blockers: list[str] = Field(default_factory=list)


class IssueRead(BaseModel):
    document: DocumentRead
    issued: bool
    pdf_checksum: str | None = None
    superseded_document_ids: list[UUID] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PdfVerifyResponse(BaseModel):
    document_id: UUID
    valid: bool


class DownloadURLResponse(BaseModel):
    download_url: str


class ChangeSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    previous_document_id: UUID | None = None
    version_number: int
    new_actions_count: int
    closed_actions_count: int
    outstanding_actions_count: int
    new_actions: list[dict[str, Any]] | None = None
    closed_actions: list[dict[str, Any]] | None = None
    has_material_changes: bool
    summary_text: str | None = None
    generated_by: UUID
    created_at: datetime


# ---------------------------------------------------------------------------
# Module instances
# ---------------------------------------------------------------------------


class ModuleUpsert(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)
    outcome: str | None = Field(default=None, max_length=50)


class ModuleComplete(BaseModel):
    outcome: str | None = Field(default=None, max_length=50)


class ModuleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    module_key: str
    payload: dict[str, Any]
    outcome: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
