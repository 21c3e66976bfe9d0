from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.lifecycle import ActionItem, ActionPriority, ActionStatus
from app.schemas.actions import ActionClose, ActionCreate, ActionUpdate
from app.services import lifecycle
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_VALID_STATUSES = {e.value for e in ActionStatus}


def _load_action(db: Session, ctx: ActorContext, action_id: str) -> ActionItem:
    stmt = select(ActionItem).where(
        ActionItem.id == coerce_uuid(action_id),
        ActionItem.organisation_id == ctx.organisation_id,
        ActionItem.deleted_at.is_(None),
    )
    action = db.scalars(stmt).first()
    if not action:
        raise HTTPException(status_code=404, detail="Action not found")
    return action


def _editable_action(db: Session, ctx: ActorContext, action_id: str) -> ActionItem:
    action = _load_action(db, ctx, action_id)
    lifecycle.assert_editable(db, ctx, action.document_id)
    return action


class Actions(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, ctx: ActorContext, document_id: str, payload: ActionCreate
    ) -> ActionItem:
        document = lifecycle.assert_editable(db, ctx, document_id)
        data = payload.model_dump()
        action = ActionItem(
            organisation_id=document.organisation_id,
            document_id=document.id,
            source_document_id=document.id,
            created_by=ctx.actor_id,
            **data,
        )
        if action.status == ActionStatus.closed:
            action.closed_at = datetime.now(timezone.utc)
            action.closed_by = ctx.actor_id
        db.add(action)
        db.flush()
        # A fresh action is the root of its own lineage.
        action.origin_action_id = action.id
        db.commit()
        db.refresh(action)
        logger.info("Created action %s on document %s", action.id, document.id)
        publish_event(
            EventType.action_created,
            entity_type="action",
            entity_id=action.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"priority": action.priority.value},
        )
        return action

    @staticmethod
    def get(db: Session, ctx: ActorContext, action_id: str) -> ActionItem:
        return _load_action(db, ctx, action_id)

    @staticmethod
    def list(
        db: Session,
        ctx: ActorContext,
        document_id: str,
        status: str | None,
        priority: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[ActionItem]:  # type: ignore[override]
        document = lifecycle.load_document(db, ctx, document_id)
        stmt = select(ActionItem).where(
            ActionItem.document_id == document.id,
            ActionItem.deleted_at.is_(None),
        )
        if status is not None:
            if status not in _VALID_STATUSES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid status. Allowed: {sorted(_VALID_STATUSES)}",
                )
            stmt = stmt.where(ActionItem.status == ActionStatus(status))
        if priority is not None:
            stmt = stmt.where(ActionItem.priority == ActionPriority(priority))
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": ActionItem.created_at,
                "priority": ActionItem.priority,
                "target_date": ActionItem.target_date,
                "status": ActionItem.status,
            },
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session, ctx: ActorContext, action_id: str, payload: ActionUpdate
    ) -> ActionItem:
        action = _editable_action(db, ctx, action_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("status") == ActionStatus.closed:
            raise HTTPException(
                status_code=400, detail="Use the close operation to close an action"
            )
        for key, value in data.items():
            setattr(action, key, value)
        db.commit()
        db.refresh(action)
        logger.info("Updated action %s", action.id)
        publish_event(
            EventType.action_updated,
            entity_type="action",
            entity_id=action.id,
            actor_id=ctx.actor_id,
            document_id=action.document_id,
            organisation_id=ctx.organisation_id,
            payload={"changed_fields": list(data.keys())},
        )
        return action

    @staticmethod
    def close(
        db: Session, ctx: ActorContext, action_id: str, payload: ActionClose
    ) -> ActionItem:
        action = _editable_action(db, ctx, action_id)
        if action.status == ActionStatus.closed:
            return action
        action.status = ActionStatus.closed
        action.closed_at = datetime.now(timezone.utc)
        action.closed_by = ctx.actor_id
        action.closure_note = payload.closure_note
        db.commit()
        db.refresh(action)
        logger.info("Closed action %s", action.id)
        publish_event(
            EventType.action_closed,
            entity_type="action",
            entity_id=action.id,
            actor_id=ctx.actor_id,
            document_id=action.document_id,
            organisation_id=ctx.organisation_id,
        )
        return action

    @staticmethod
    def reopen(db: Session, ctx: ActorContext, action_id: str) -> ActionItem:
        action = _editable_action(db, ctx, action_id)
        if action.status != ActionStatus.closed:
            raise HTTPException(status_code=400, detail="Action is not closed")
        action.status = ActionStatus.open
        action.reopened_at = datetime.now(timezone.utc)
        action.reopened_by = ctx.actor_id
        action.closed_at = None
        action.closed_by = None
        db.commit()
        db.refresh(action)
        logger.info("Reopened action %s", action.id)
        publish_event(
            EventType.action_reopened,
            entity_type="action",
            entity_id=action.id,
            actor_id=ctx.actor_id,
            document_id=action.document_id,
            organisation_id=ctx.organisation_id,
        )
        return action

    @staticmethod
    def delete(db: Session, ctx: ActorContext, action_id: str) -> None:
        action = _editable_action(db, ctx, action_id)
        action.deleted_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("Soft-deleted action %s", action.id)
        publish_event(
            EventType.action_deleted,
            entity_type="action",
            entity_id=action.id,
            actor_id=ctx.actor_id,
            document_id=action.document_id,
            organisation_id=ctx.organisation_id,
        )


actions = Actions()
