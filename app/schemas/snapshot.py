from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.lifecycle import (
    ActionPriority,
    ActionStatus,
    ModuleKind,
    SnapshotStatus,
)

SNAPSHOT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Snapshot payload: the frozen content of one revision
# ---------------------------------------------------------------------------


class SnapshotMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    document_type: ModuleKind
    enabled_modules: list[ModuleKind] | None = None
    assessment_date: date | None = None
    summary_rating: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class SnapshotModule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    module_key: str
    payload: dict[str, Any] = Field(default_factory=dict)
    outcome: str | None = None
    completed_at: datetime | None = None


class SnapshotAction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: UUID
    recommended_action: str
    status: ActionStatus
    priority: ActionPriority
    module_key: str | None = None
    timescale: str | None = None
    target_date: date | None = None
    owner_id: UUID | None = None
    source_document_id: UUID | None = None
    origin_action_id: UUID | None = None
    carried_from_document_id: UUID | None = None
    closed_at: datetime | None = None
    closure_note: str | None = None


class SnapshotEvidence(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: UUID
    storage_path: str
    file_name: str
    mime_type: str
    size_bytes: int | None = None
    caption: str | None = None
    module_key: str | None = None
    action_id: UUID | None = None


class SnapshotPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    document_id: UUID
    family_id: UUID
    version_number: int
    metadata: SnapshotMetadata
    modules: list[SnapshotModule] = Field(default_factory=list)
    actions: list[SnapshotAction] = Field(default_factory=list)
    evidence: list[SnapshotEvidence] = Field(default_factory=list)
    completion: dict[str, bool] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# API representation
# ---------------------------------------------------------------------------


class SnapshotSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family_id: UUID
    document_id: UUID
    revision_number: int
    status: SnapshotStatus
    payload_sha256: str
    created_by: UUID
    created_at: datetime


class SnapshotRead(SnapshotSummaryRead):
    payload: dict[str, Any]
