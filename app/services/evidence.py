from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.lifecycle import ActionItem, EvidenceReference
from app.schemas.evidence import EvidenceCreate, EvidenceUpdate, EvidenceUploadRequest
from app.services import lifecycle
from app.services.common import coerce_uuid
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.storage import evidence_key, storage

logger = logging.getLogger(__name__)


def _load_evidence(db: Session, ctx: ActorContext, evidence_id: str) -> EvidenceReference:
    stmt = select(EvidenceReference).where(
        EvidenceReference.id == coerce_uuid(evidence_id),
        EvidenceReference.organisation_id == ctx.organisation_id,
        EvidenceReference.deleted_at.is_(None),
    )
    item = db.scalars(stmt).first()
    if not item:
        raise HTTPException(status_code=404, detail="Evidence not found")
    return item


def _check_action(db: Session, document_id, action_id) -> None:
    if action_id is None:
        return
    action = db.get(ActionItem, coerce_uuid(action_id))
    if not action or action.document_id != document_id or action.deleted_at:
        raise HTTPException(status_code=404, detail="Action not found")


class Evidence:
    @staticmethod
    def request_upload(
        db: Session, ctx: ActorContext, document_id: str, payload: EvidenceUploadRequest
    ) -> dict:
        """Presigned PUT for a new evidence file under the family's prefix."""
        document = lifecycle.assert_editable(db, ctx, document_id)
        path = evidence_key(
            document.organisation_id,
            document.family_id,
            uuid.uuid4().hex[:12],
            payload.file_name,
        )
        url = storage.generate_upload_url(path, payload.mime_type)
        return {"storage_path": path, "upload_url": url}

    @staticmethod
    def create(
        db: Session, ctx: ActorContext, document_id: str, payload: EvidenceCreate
    ) -> EvidenceReference:
        document = lifecycle.assert_editable(db, ctx, document_id)
        _check_action(db, document.id, payload.action_id)
        item = EvidenceReference(
            organisation_id=document.organisation_id,
            document_id=document.id,
            family_id=document.family_id,
            uploaded_by=ctx.actor_id,
            **payload.model_dump(),
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info("Attached evidence %s to document %s", item.id, document.id)
        publish_event(
            EventType.evidence_added,
            entity_type="evidence",
            entity_id=item.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"file_name": item.file_name},
        )
        return item

    @staticmethod
    def get(db: Session, ctx: ActorContext, evidence_id: str) -> EvidenceReference:
        return _load_evidence(db, ctx, evidence_id)

    @staticmethod
    def list(
        db: Session,
        ctx: ActorContext,
        document_id: str,
        action_id: str | None = None,
        module_key: str | None = None,
    ) -> list[EvidenceReference]:
        document = lifecycle.load_document(db, ctx, document_id)
        stmt = select(EvidenceReference).where(
            EvidenceReference.document_id == document.id,
            EvidenceReference.deleted_at.is_(None),
        )
        if action_id is not None:
            stmt = stmt.where(EvidenceReference.action_id == coerce_uuid(action_id))
        if module_key is not None:
            stmt = stmt.where(EvidenceReference.module_key == module_key)
        return db.scalars(stmt.order_by(EvidenceReference.created_at.asc())).all()

    @staticmethod
    def update(
        db: Session, ctx: ActorContext, evidence_id: str, payload: EvidenceUpdate
    ) -> EvidenceReference:
        item = _load_evidence(db, ctx, evidence_id)
        lifecycle.assert_editable(db, ctx, item.document_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("action_id") is not None:
            _check_action(db, item.document_id, data["action_id"])
        for key, value in data.items():
            setattr(item, key, value)
        db.commit()
        db.refresh(item)
        logger.info("Updated evidence %s", item.id)
        publish_event(
            EventType.evidence_updated,
            entity_type="evidence",
            entity_id=item.id,
            actor_id=ctx.actor_id,
            document_id=item.document_id,
            organisation_id=ctx.organisation_id,
            payload={"changed_fields": list(data.keys())},
        )
        return item

    @staticmethod
    def delete(db: Session, ctx: ActorContext, evidence_id: str) -> None:
        """Soft-delete the reference. The stored file may back other versions."""
        item = _load_evidence(db, ctx, evidence_id)
        lifecycle.assert_editable(db, ctx, item.document_id)
        item.deleted_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("Removed evidence %s", item.id)
        publish_event(
            EventType.evidence_removed,
            entity_type="evidence",
            entity_id=item.id,
            actor_id=ctx.actor_id,
            document_id=item.document_id,
            organisation_id=ctx.organisation_id,
        )


evidence = Evidence()
