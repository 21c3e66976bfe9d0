"""Issuance pipeline: draft -> issued with a locked, checksummed PDF.

Order of operations:

1. status and readiness checks, before any side effect
2. payload assembly (optionally rated) and PDF rendering
3. upload to a path derived from the document id, so a retry overwrites
4. issued snapshot flushed, then the status flip, in a single commit
5. previous issued versions superseded in a second commit
6. change summary and events, neither of which can undo the issue

A failure before step 4 commits leaves the document a draft with
``pdf_generation_error`` recorded; nothing is ever half-issued.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import IssueBlockedError, NotDraftError, PdfGenerationError
from app.models.lifecycle import (
    Document,
    DocumentStatus,
    ModuleInstance,
    SnapshotStatus,
)
from app.observability import ISSUANCE_TOTAL
from app.schemas.snapshot import SnapshotPayload
from app.services import change_summary, lifecycle
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.module_catalog import get_module_name, required_modules_for_kinds
from app.services.pdf_renderer import PdfRenderer, RenderError
from app.services.pdf_renderer import renderer as default_renderer
from app.services.snapshots import (
    build_payload,
    resolve_effective_modules,
    snapshots,
)
from app.services.storage import ContentStore, StorageError, locked_pdf_key
from app.services.storage import storage as default_store

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[Session, Document], list[str]]
RatingStrategy = Callable[[SnapshotPayload], "str | None"]


@dataclass
class IssuanceResult:
    document: Document
    issued: bool
    pdf_checksum: str | None = None
    superseded_document_ids: list = field(default_factory=list)
    fallback_pdf: bytes | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Readiness checks
# ---------------------------------------------------------------------------


def _modules(db: Session, document: Document) -> list[ModuleInstance]:
    return db.scalars(
        select(ModuleInstance).where(ModuleInstance.document_id == document.id)
    ).all()


def has_modules(db: Session, document: Document) -> list[str]:
    if not _modules(db, document):
        return ["Document must have at least one module"]
    return []


def no_empty_modules(db: Session, document: Document) -> list[str]:
    return [
        f"Module {m.module_key} has no data"
        for m in _modules(db, document)
        if not m.payload
    ]


def required_modules_completed(db: Session, document: Document) -> list[str]:
    completed = {
        m.module_key for m in _modules(db, document) if m.completed_at is not None
    }
    required = required_modules_for_kinds(resolve_effective_modules(document))
    return [
        f"{get_module_name(key)} must be completed"
        for key in required
        if key not in completed
    ]


DEFAULT_READINESS_CHECKS: tuple = (
    has_modules,
    no_empty_modules,
    required_modules_completed,
)


def collect_blockers(
    db: Session, document: Document, checks: Sequence[ReadinessCheck] | None = None
) -> list[str]:
    blockers = []
    for check in DEFAULT_READINESS_CHECKS if checks is None else checks:
        blockers.extend(check(db, document))
    return blockers


def check_readiness(
    db: Session,
    ctx: ActorContext,
    document_id,
    readiness_checks: Sequence[ReadinessCheck] | None = None,
) -> dict:
    document = lifecycle.load_document(db, ctx, document_id)
    blockers = []
    if document.status != DocumentStatus.draft:
        blockers.append("Only draft documents can be issued")
    blockers.extend(collect_blockers(db, document, readiness_checks))
    return {"document_id": document.id, "ready": not blockers, "blockers": blockers}


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _record_failure(
    db: Session, ctx: ActorContext, document_id, message: str
) -> Document:
    """Persist the failure on the (still draft) document in a fresh transaction."""
    db.rollback()
    document = lifecycle.load_document(db, ctx, document_id, for_update=True)
    document.pdf_generation_error = message[:2000]
    db.commit()
    db.refresh(document)
    return document


def _ensure_issuable(db: Session, document: Document) -> None:
    if document.status != DocumentStatus.draft:
        raise NotDraftError(
            details={
                "document_id": str(document.id),
                "status": document.status.value,
            }
        )
    clash = db.scalars(
        select(Document.id).where(
            Document.family_id == document.family_id,
            Document.version_number == document.version_number,
            Document.status != DocumentStatus.draft,
            Document.id != document.id,
        )
    ).first()
    if clash is not None:
        raise NotDraftError(
            f"Version {document.version_number} of this document has already "
            "been issued.",
            details={"document_id": str(document.id)},
        )


def issue(
    db: Session,
    ctx: ActorContext,
    document_id,
    renderer: PdfRenderer | None = None,
    store: ContentStore | None = None,
    readiness_checks: Sequence[ReadinessCheck] | None = None,
    rating_strategy: RatingStrategy | None = None,
) -> IssuanceResult:
    renderer = renderer or default_renderer
    store = store or default_store

    document = lifecycle.load_document(db, ctx, document_id, for_update=True)
    _ensure_issuable(db, document)

    blockers = collect_blockers(db, document, readiness_checks)
    if blockers:
        ISSUANCE_TOTAL.labels("blocked").inc()
        logger.info("Issue of %s blocked: %s", document.id, "; ".join(blockers))
        raise IssueBlockedError(details={"blockers": blockers})

    payload = build_payload(db, document)
    if payload.metadata.summary_rating is None and rating_strategy is not None:
        payload.metadata.summary_rating = rating_strategy(payload)
    render_input = payload.model_dump(mode="json")

    try:
        pdf_bytes = renderer.render(render_input)
    except RenderError as e:
        ISSUANCE_TOTAL.labels("render_failed").inc()
        logger.error("PDF generation failed for %s: %s", document.id, e)
        _record_failure(db, ctx, document_id, f"PDF generation failed: {e}")
        publish_event(
            EventType.document_issue_failed,
            entity_type="document",
            entity_id=document_id,
            actor_id=ctx.actor_id,
            document_id=document_id,
            organisation_id=ctx.organisation_id,
            payload={"stage": "render", "error": str(e)},
        )
        raise PdfGenerationError(details={"error": str(e)}) from e

    checksum = hashlib.sha256(pdf_bytes).hexdigest()
    path = locked_pdf_key(document.organisation_id, document.family_id, document.id)

    try:
        store.put_bytes(path, pdf_bytes, "application/pdf")
    except StorageError as e:
        ISSUANCE_TOTAL.labels("upload_failed").inc()
        logger.error("Locked PDF upload failed for %s: %s", document.id, e)
        document = _record_failure(db, ctx, document_id, f"PDF upload failed: {e}")
        publish_event(
            EventType.document_issue_failed,
            entity_type="document",
            entity_id=document.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=ctx.organisation_id,
            payload={"stage": "upload", "error": str(e)},
        )
        return IssuanceResult(
            document=document,
            issued=False,
            pdf_checksum=checksum,
            fallback_pdf=pdf_bytes,
            error=str(e),
        )

    # Snapshot first; the status flip rides in the same commit.
    now = datetime.now(timezone.utc)
    try:
        snapshots.write(db, ctx, document, SnapshotStatus.issued, payload)
        lifecycle.transition(document, DocumentStatus.issued)
        document.issued_at = now
        document.issued_by = ctx.actor_id
        document.summary_rating = payload.metadata.summary_rating
        document.locked_pdf_reference = path
        document.locked_pdf_checksum = checksum
        document.locked_pdf_size = len(pdf_bytes)
        document.locked_pdf_generated_at = now
        document.pdf_generation_error = None
        db.commit()
    except IntegrityError as e:
        db.rollback()
        ISSUANCE_TOTAL.labels("conflict").inc()
        logger.warning("Concurrent issue of %s rejected: %s", document_id, e.orig)
        raise NotDraftError(details={"document_id": str(document_id)}) from e
    db.refresh(document)

    result = IssuanceResult(document=document, issued=True, pdf_checksum=checksum)
    ISSUANCE_TOTAL.labels("issued").inc()
    logger.info(
        "Issued document %s (family %s v%d), pdf sha256 %s",
        document.id,
        document.family_id,
        document.version_number,
        checksum,
    )

    previous = []
    try:
        previous = lifecycle.supersede_previous(db, document)
        db.commit()
        result.superseded_document_ids = [p.id for p in previous]
    except SQLAlchemyError as e:
        db.rollback()
        previous = []
        result.warnings.append("Previous version will be superseded by reconciliation")
        logger.error(
            "Superseding previous versions of family %s failed: %s",
            document.family_id,
            e,
            extra={"document_id": str(document.id)},
        )

    try:
        with db.begin_nested():
            change_summary.generate(db, ctx, document)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        result.warnings.append("Change summary was not generated")
        logger.warning(
            "Change summary failed for %s: %s",
            document.id,
            e,
            extra={"auxiliary": True, "document_id": str(document.id)},
        )

    publish_event(
        EventType.document_issued,
        entity_type="document",
        entity_id=document.id,
        actor_id=ctx.actor_id,
        document_id=document.id,
        organisation_id=ctx.organisation_id,
        payload={
            "version_number": document.version_number,
            "pdf_checksum": checksum,
        },
    )
    for prior in previous:
        publish_event(
            EventType.document_superseded,
            entity_type="document",
            entity_id=prior.id,
            actor_id=ctx.actor_id,
            document_id=prior.id,
            organisation_id=ctx.organisation_id,
            payload={"superseded_by_document_id": str(document.id)},
        )
    return result
