"""Append-only revision snapshot store.

A snapshot payload is stored as JSON together with the SHA-256 of its
canonical serialisation, so a baseline can be proven unchanged before a new
draft is forked from it.
"""

from __future__ import annotations

import hashlib
import json
import logging

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import BaselineSnapshotMissing
from app.models.lifecycle import (
    ActionItem,
    Document,
    EvidenceReference,
    ModuleInstance,
    ModuleKind,
    RevisionSnapshot,
    SnapshotStatus,
)
from app.schemas.snapshot import (
    SnapshotAction,
    SnapshotEvidence,
    SnapshotMetadata,
    SnapshotModule,
    SnapshotPayload,
)
from app.services.common import coerce_uuid
from app.services.context import ActorContext
from app.services.module_catalog import module_order
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)


def canonical_json(payload: dict) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def payload_digest(payload: dict) -> str:
    return hashlib.sha256(canonical_json(payload)).hexdigest()


def resolve_effective_modules(document) -> set[ModuleKind]:
    """Module kinds a document covers.

    ``enabled_modules`` wins when present; older single-kind documents fall
    back to ``document_type``.
    """
    if document.enabled_modules:
        return {ModuleKind(k) for k in document.enabled_modules}
    return {ModuleKind(document.document_type)}


def _enabled_modules_value(kinds) -> list[str] | None:
    if not kinds:
        return None
    return [k.value if isinstance(k, ModuleKind) else k for k in kinds]


def build_payload(db: Session, document: Document) -> SnapshotPayload:
    """Assemble the payload from live rows of ``document``."""
    modules = db.scalars(
        select(ModuleInstance).where(ModuleInstance.document_id == document.id)
    ).all()
    actions = db.scalars(
        select(ActionItem)
        .where(
            ActionItem.document_id == document.id,
            ActionItem.deleted_at.is_(None),
        )
        .order_by(ActionItem.created_at.asc())
    ).all()
    evidence = db.scalars(
        select(EvidenceReference)
        .where(
            EvidenceReference.document_id == document.id,
            EvidenceReference.deleted_at.is_(None),
        )
        .order_by(EvidenceReference.created_at.asc())
    ).all()

    modules = sorted(modules, key=lambda m: (module_order(m.module_key), m.module_key))
    return SnapshotPayload(
        document_id=document.id,
        family_id=document.family_id,
        version_number=document.version_number,
        metadata=SnapshotMetadata(
            title=document.title,
            document_type=document.document_type,
            enabled_modules=_enabled_modules_value(document.enabled_modules),
            assessment_date=document.assessment_date,
            summary_rating=document.summary_rating,
            extra=document.metadata_ or {},
        ),
        modules=[
            SnapshotModule(
                module_key=m.module_key,
                payload=m.payload or {},
                outcome=m.outcome,
                completed_at=m.completed_at,
            )
            for m in modules
        ],
        actions=[
            SnapshotAction(
                id=a.id,
                recommended_action=a.recommended_action,
                status=a.status,
                priority=a.priority,
                module_key=a.module_key,
                timescale=a.timescale,
                target_date=a.target_date,
                owner_id=a.owner_id,
                source_document_id=a.source_document_id,
                origin_action_id=a.origin_action_id,
                carried_from_document_id=a.carried_from_document_id,
                closed_at=a.closed_at,
                closure_note=a.closure_note,
            )
            for a in actions
        ],
        evidence=[
            SnapshotEvidence(
                id=e.id,
                storage_path=e.storage_path,
                file_name=e.file_name,
                mime_type=e.mime_type,
                size_bytes=e.size_bytes,
                caption=e.caption,
                module_key=e.module_key,
                action_id=e.action_id,
            )
            for e in evidence
        ],
        completion={m.module_key: m.completed_at is not None for m in modules},
    )


class Snapshots(ListResponseMixin):
    @staticmethod
    def write(
        db: Session,
        ctx: ActorContext,
        document: Document,
        status: SnapshotStatus,
        payload: SnapshotPayload,
    ) -> RevisionSnapshot:
        """Insert one snapshot row and flush it. Never updates an existing one."""
        data = payload.model_dump(mode="json")
        snapshot = RevisionSnapshot(
            organisation_id=document.organisation_id,
            family_id=document.family_id,
            document_id=document.id,
            revision_number=document.version_number,
            status=status,
            payload=data,
            payload_sha256=payload_digest(data),
            created_by=ctx.actor_id,
        )
        db.add(snapshot)
        db.flush()
        logger.info(
            "Wrote %s snapshot r%d for family %s",
            status.value,
            snapshot.revision_number,
            snapshot.family_id,
        )
        return snapshot

    @staticmethod
    def load_verified(snapshot: RevisionSnapshot) -> SnapshotPayload:
        """Check the stored digest and schema of a snapshot payload."""
        actual = payload_digest(snapshot.payload)
        if actual != snapshot.payload_sha256:
            logger.critical(
                "Snapshot %s digest mismatch: stored %s, computed %s",
                snapshot.id,
                snapshot.payload_sha256,
                actual,
            )
            raise BaselineSnapshotMissing(
                "Issued baseline snapshot failed its integrity check",
                details={"snapshot_id": str(snapshot.id)},
            )
        try:
            return SnapshotPayload.model_validate(snapshot.payload)
        except ValidationError as e:
            logger.error("Snapshot %s payload is invalid: %s", snapshot.id, e)
            raise BaselineSnapshotMissing(
                "Issued baseline snapshot has an invalid payload",
                details={"snapshot_id": str(snapshot.id)},
            ) from e

    @staticmethod
    def find(
        db: Session, family_id, revision_number: int, status: SnapshotStatus
    ) -> RevisionSnapshot | None:
        # A discarded draft keeps its snapshot; only live documents count.
        stmt = (
            select(RevisionSnapshot)
            .join(Document, Document.id == RevisionSnapshot.document_id)
            .where(
                RevisionSnapshot.family_id == coerce_uuid(family_id),
                RevisionSnapshot.revision_number == revision_number,
                RevisionSnapshot.status == status,
                Document.deleted_at.is_(None),
            )
        )
        return db.scalars(stmt).first()

    @staticmethod
    def issued_baseline(db: Session, document: Document) -> SnapshotPayload:
        snapshot = Snapshots.find(
            db, document.family_id, document.version_number, SnapshotStatus.issued
        )
        if not snapshot:
            logger.error(
                "No issued snapshot for family %s r%d",
                document.family_id,
                document.version_number,
            )
            raise BaselineSnapshotMissing(
                details={
                    "family_id": str(document.family_id),
                    "revision_number": document.version_number,
                }
            )
        return Snapshots.load_verified(snapshot)

    @staticmethod
    def get(
        db: Session,
        ctx: ActorContext,
        family_id,
        revision_number: int,
        status: str = SnapshotStatus.issued.value,
    ) -> RevisionSnapshot:
        snapshot = Snapshots.find(db, family_id, revision_number, SnapshotStatus(status))
        if not snapshot or snapshot.organisation_id != ctx.organisation_id:
            raise HTTPException(status_code=404, detail="Snapshot not found")
        return snapshot

    @staticmethod
    def list(
        db: Session,
        ctx: ActorContext,
        family_id,
        limit: int,
        offset: int,
    ) -> list[RevisionSnapshot]:  # type: ignore[override]
        stmt = (
            select(RevisionSnapshot)
            .where(
                RevisionSnapshot.family_id == coerce_uuid(family_id),
                RevisionSnapshot.organisation_id == ctx.organisation_id,
            )
            .order_by(
                RevisionSnapshot.revision_number.asc(),
                RevisionSnapshot.created_at.asc(),
            )
        )
        return db.scalars(stmt.limit(limit).offset(offset)).all()


snapshots = Snapshots()
