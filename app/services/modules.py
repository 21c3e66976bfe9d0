from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.lifecycle import ModuleInstance
from app.schemas.lifecycle import ModuleComplete, ModuleUpsert
from app.services import lifecycle
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.module_catalog import MODULE_CATALOG, module_order
from app.services.snapshots import resolve_effective_modules

logger = logging.getLogger(__name__)


def _find(db: Session, document_id, module_key: str) -> ModuleInstance | None:
    stmt = select(ModuleInstance).where(
        ModuleInstance.document_id == document_id,
        ModuleInstance.module_key == module_key,
    )
    return db.scalars(stmt).first()


class Modules:
    @staticmethod
    def list(db: Session, ctx: ActorContext, document_id: str) -> list[ModuleInstance]:
        document = lifecycle.load_document(db, ctx, document_id)
        items = db.scalars(
            select(ModuleInstance).where(ModuleInstance.document_id == document.id)
        ).all()
        return sorted(items, key=lambda m: (module_order(m.module_key), m.module_key))

    @staticmethod
    def get(
        db: Session, ctx: ActorContext, document_id: str, module_key: str
    ) -> ModuleInstance:
        document = lifecycle.load_document(db, ctx, document_id)
        module = _find(db, document.id, module_key)
        if not module:
            raise HTTPException(status_code=404, detail="Module not found")
        return module

    @staticmethod
    def upsert(
        db: Session,
        ctx: ActorContext,
        document_id: str,
        module_key: str,
        payload: ModuleUpsert,
    ) -> ModuleInstance:
        document = lifecycle.assert_editable(db, ctx, document_id)
        definition = MODULE_CATALOG.get(module_key)
        if definition is None:
            raise HTTPException(status_code=400, detail="Unknown module key")
        if not definition.kinds & resolve_effective_modules(document):
            raise HTTPException(
                status_code=400,
                detail="Module does not apply to this document type",
            )

        module = _find(db, document.id, module_key)
        if module is None:
            module = ModuleInstance(
                organisation_id=document.organisation_id,
                document_id=document.id,
                module_key=module_key,
            )
            db.add(module)
        module.payload = payload.payload
        if "outcome" in payload.model_fields_set:
            module.outcome = payload.outcome

        db.commit()
        db.refresh(module)
        logger.info("Saved module %s on document %s", module_key, document.id)
        publish_event(
            EventType.module_updated,
            entity_type="module_instance",
            entity_id=module.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"module_key": module_key},
        )
        return module

    @staticmethod
    def complete(
        db: Session,
        ctx: ActorContext,
        document_id: str,
        module_key: str,
        payload: ModuleComplete,
    ) -> ModuleInstance:
        document = lifecycle.assert_editable(db, ctx, document_id)
        module = _find(db, document.id, module_key)
        if not module:
            raise HTTPException(status_code=404, detail="Module not found")
        if payload.outcome is not None:
            module.outcome = payload.outcome
        module.completed_at = datetime.now(timezone.utc)

        db.commit()
        db.refresh(module)
        logger.info("Completed module %s on document %s", module_key, document.id)
        publish_event(
            EventType.module_completed,
            entity_type="module_instance",
            entity_id=module.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"module_key": module_key, "outcome": module.outcome},
        )
        return module


modules = Modules()
