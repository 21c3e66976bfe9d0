from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.lifecycle import ActionPriority, ActionStatus


class ActionBase(BaseModel):
    recommended_action: str = Field(min_length=1)
    priority: ActionPriority = ActionPriority.p3
    module_key: str | None = Field(default=None, max_length=120)
    timescale: str | None = Field(default=None, max_length=120)
    target_date: date | None = None
    owner_id: UUID | None = None


class ActionCreate(ActionBase):
    status: ActionStatus = ActionStatus.open


class ActionUpdate(BaseModel):
    recommended_action: str | None = Field(default=None, min_length=1)
    priority: ActionPriority | None = None
    status: ActionStatus | None = None
    module_key: str | None = Field(default=None, max_length=120)
    timescale: str | None = Field(default=None, max_length=120)
    target_date: date | None = None
    owner_id: UUID | None = None


class ActionClose(BaseModel):
    closure_note: str | None = None


class ActionRead(ActionBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    status: ActionStatus
    source_document_id: UUID | None = None
    origin_action_id: UUID | None = None
    carried_from_document_id: UUID | None = None
    closed_at: datetime | None = None
    closed_by: UUID | None = None
    closure_note: str | None = None
    reopened_at: datetime | None = None
    reopened_by: UUID | None = None
    created_by: UUID
    created_at: datetime
    updated_at: datetime
