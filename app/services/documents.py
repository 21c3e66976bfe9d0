from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.lifecycle import Document, DocumentStatus, ModuleKind
from app.schemas.lifecycle import DocumentCreate, DocumentUpdate
from app.services import lifecycle
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_VALID_STATUSES = {e.value for e in DocumentStatus}


def _module_values(kinds) -> list[str] | None:
    if not kinds:
        return None
    return [ModuleKind(k).value for k in kinds]


class Documents(ListResponseMixin):
    @staticmethod
    def create(db: Session, ctx: ActorContext, payload: DocumentCreate) -> Document:
        """Start a new family with a version 1 draft."""
        data = payload.model_dump()
        document = Document(
            organisation_id=ctx.organisation_id,
            family_id=uuid.uuid4(),
            version_number=1,
            status=DocumentStatus.draft,
            title=data["title"],
            document_type=ModuleKind(data["document_type"]),
            enabled_modules=_module_values(data.get("enabled_modules")),
            assessment_date=data.get("assessment_date") or date.today(),
            summary_rating=data.get("summary_rating"),
            metadata_=data.get("metadata_"),
            created_by=ctx.actor_id,
        )
        db.add(document)
        db.commit()
        db.refresh(document)
        logger.info("Created document %s in family %s", document.id, document.family_id)
        publish_event(
            EventType.document_created,
            entity_type="document",
            entity_id=document.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
        )
        return document

    @staticmethod
    def get(db: Session, ctx: ActorContext, document_id: str) -> Document:
        return lifecycle.load_document(db, ctx, document_id)

    @staticmethod
    def list(
        db: Session,
        ctx: ActorContext,
        status: str | None,
        document_type: str | None,
        family_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:  # type: ignore[override]
        stmt = select(Document).where(
            Document.organisation_id == ctx.organisation_id,
            Document.deleted_at.is_(None),
        )
        if status is not None:
            if status not in _VALID_STATUSES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid status. Allowed: {sorted(_VALID_STATUSES)}",
                )
            stmt = stmt.where(Document.status == DocumentStatus(status))
        if document_type is not None:
            stmt = stmt.where(Document.document_type == ModuleKind(document_type))
        if family_id is not None:
            stmt = stmt.where(Document.family_id == coerce_uuid(family_id))
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "title": Document.title,
                "version_number": Document.version_number,
                "issued_at": Document.issued_at,
            },
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session, ctx: ActorContext, document_id: str, payload: DocumentUpdate
    ) -> Document:
        document = lifecycle.assert_editable(db, ctx, document_id)
        data = payload.model_dump(exclude_unset=True)

        if "enabled_modules" in data:
            data["enabled_modules"] = _module_values(data["enabled_modules"])
        if "assessment_date" in data and data["assessment_date"] is None:
            data["assessment_date"] = date.today()

        for key, value in data.items():
            setattr(document, key, value)

        db.commit()
        db.refresh(document)
        logger.info("Updated document %s", document.id)
        publish_event(
            EventType.document_updated,
            entity_type="document",
            entity_id=document.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"changed_fields": list(data.keys())},
        )
        return document

    @staticmethod
    def discard(db: Session, ctx: ActorContext, document_id: str) -> None:
        """Soft-delete a draft. Issued and superseded versions are permanent."""
        document = lifecycle.assert_editable(db, ctx, document_id)
        document.deleted_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("Discarded draft %s", document.id)
        publish_event(
            EventType.document_discarded,
            entity_type="document",
            entity_id=document.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
        )

    @staticmethod
    def lock_status(db: Session, ctx: ActorContext, document_id: str) -> dict:
        document = lifecycle.load_document(db, ctx, document_id)
        return {
            "document_id": document.id,
            "status": document.status,
            "editable": lifecycle.is_editable(document),
            "reason": lifecycle.lock_reason(document),
        }

    @staticmethod
    def list_versions(db: Session, ctx: ActorContext, family_id: str) -> list[Document]:
        versions = [
            d
            for d in lifecycle.family_documents(db, ctx, family_id)
            if d.deleted_at is None
        ]
        if not versions:
            raise HTTPException(status_code=404, detail="Document family not found")
        return versions


documents = Documents()
