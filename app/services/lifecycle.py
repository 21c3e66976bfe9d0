"""Document lifecycle state machine.

draft -> issued happens only through the issuance pipeline, issued ->
superseded only when a later version of the same family issues.  Nothing
ever returns to draft; a new draft is always a new row.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.errors import InvalidTransitionError, LockedDocumentError
from app.models.lifecycle import LOCKED_PDF_FIELDS, Document, DocumentStatus
from app.services.common import coerce_uuid
from app.services.context import ActorContext

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    DocumentStatus.draft: {DocumentStatus.issued},
    DocumentStatus.issued: {DocumentStatus.superseded},
    DocumentStatus.superseded: set(),
}

_LOCK_REASONS = {
    DocumentStatus.issued: (
        "This document has been issued and is locked. "
        "Create a new version to make changes."
    ),
    DocumentStatus.superseded: (
        "This document has been superseded by a newer version and is read-only."
    ),
}


def is_editable(document: Document) -> bool:
    return document.status == DocumentStatus.draft and document.deleted_at is None


def lock_reason(document: Document) -> str | None:
    if document.deleted_at is not None:
        return "This draft has been discarded."
    return _LOCK_REASONS.get(document.status)


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(document: Document, target: DocumentStatus) -> None:
    if not can_transition(document.status, target):
        raise InvalidTransitionError(
            f"Cannot change status from {document.status.value} to {target.value}",
            details={"document_id": str(document.id)},
        )
    document.status = target


def load_document(
    db: Session,
    ctx: ActorContext,
    document_id,
    for_update: bool = False,
    include_discarded: bool = False,
) -> Document:
    stmt = select(Document).where(
        Document.id == coerce_uuid(document_id),
        Document.organisation_id == ctx.organisation_id,
    )
    if not include_discarded:
        stmt = stmt.where(Document.deleted_at.is_(None))
    if for_update:
        stmt = stmt.with_for_update()
    document = db.scalars(stmt).first()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def assert_editable(db: Session, ctx: ActorContext, document_id) -> Document:
    """Load the document under a row lock and fail unless it is a live draft.

    Call inside the transaction of the mutation being guarded so the lock is
    held until that mutation commits.
    """
    document = load_document(db, ctx, document_id, for_update=True)
    if not is_editable(document):
        logger.info(
            "Rejected edit of locked document %s (%s)",
            document.id,
            document.status.value,
        )
        raise LockedDocumentError(
            lock_reason(document),
            details={
                "document_id": str(document.id),
                "status": document.status.value,
            },
        )
    return document


def family_documents(db: Session, ctx: ActorContext, family_id) -> list[Document]:
    stmt = (
        select(Document)
        .where(
            Document.family_id == coerce_uuid(family_id),
            Document.organisation_id == ctx.organisation_id,
        )
        .order_by(Document.version_number.asc())
    )
    return db.scalars(stmt).all()


def latest_issued(db: Session, family_id, organisation_id=None) -> Document | None:
    stmt = select(Document).where(
        Document.family_id == coerce_uuid(family_id),
        Document.status == DocumentStatus.issued,
    )
    if organisation_id is not None:
        stmt = stmt.where(Document.organisation_id == organisation_id)
    return db.scalars(stmt.order_by(Document.version_number.desc())).first()


def active_draft(db: Session, family_id) -> Document | None:
    stmt = select(Document).where(
        Document.family_id == coerce_uuid(family_id),
        Document.status == DocumentStatus.draft,
        Document.deleted_at.is_(None),
    )
    return db.scalars(stmt).first()


def next_version_number(db: Session, family_id) -> int:
    current = db.scalar(
        select(func.max(Document.version_number)).where(
            Document.family_id == coerce_uuid(family_id),
            Document.deleted_at.is_(None),
        )
    )
    return (current or 0) + 1


def family_health(db: Session, ctx: ActorContext, family_id) -> dict:
    documents = family_documents(db, ctx, family_id)
    if not documents:
        raise HTTPException(status_code=404, detail="Document family not found")

    live = [d for d in documents if d.deleted_at is None]
    drafts = [d for d in live if d.status == DocumentStatus.draft]
    issued = [d for d in live if d.status == DocumentStatus.issued]
    superseded = [d for d in live if d.status == DocumentStatus.superseded]
    missing_pdf = [d for d in issued + superseded if not d.locked_pdf_reference]

    problems = []
    if len(drafts) > 1:
        problems.append(f"{len(drafts)} active drafts (expected at most 1)")
    if len(issued) > 1:
        problems.append(f"{len(issued)} issued versions (expected at most 1)")
    for document in drafts:
        if any(getattr(document, f) is not None for f in LOCKED_PDF_FIELDS):
            problems.append(f"Draft v{document.version_number} carries locked PDF fields")
    if missing_pdf:
        problems.append(f"{len(missing_pdf)} issued version(s) without a locked PDF")

    return {
        "family_id": coerce_uuid(family_id),
        "total_versions": len(live),
        "draft_count": len(drafts),
        "issued_count": len(issued),
        "superseded_count": len(superseded),
        "latest_version_number": max(d.version_number for d in live) if live else None,
        "latest_issued_version_number": (
            max(d.version_number for d in issued) if issued else None
        ),
        "issued_without_locked_pdf": len(missing_pdf),
        "problems": problems,
        "healthy": not problems,
    }


def supersede_previous(db: Session, document: Document) -> list[Document]:
    """Mark every other issued version of the family superseded by ``document``.

    Flushes but does not commit; the caller owns the transaction.
    """
    now = datetime.now(timezone.utc)
    stmt = select(Document).where(
        Document.family_id == document.family_id,
        Document.status == DocumentStatus.issued,
        Document.id != document.id,
        Document.version_number < document.version_number,
    )
    previous = db.scalars(stmt).all()
    for prior in previous:
        transition(prior, DocumentStatus.superseded)
        prior.superseded_at = now
        prior.superseded_by_document_id = document.id
    db.flush()
    return previous


def reconcile_family(db: Session, family_id) -> dict:
    """Repair a family left inconsistent by an interrupted pipeline.

    Supersedes stale issued versions, clears locked PDF fields from drafts and
    reports issued versions that have no locked PDF (those need an operator).
    """
    family_id = coerce_uuid(family_id)
    documents = db.scalars(
        select(Document)
        .where(Document.family_id == family_id)
        .order_by(Document.version_number.asc())
    ).all()

    superseded = 0
    issued = [d for d in documents if d.status == DocumentStatus.issued]
    if len(issued) > 1:
        newest = issued[-1]
        superseded = len(supersede_previous(db, newest))

    cleared = 0
    for document in documents:
        if document.status != DocumentStatus.draft:
            continue
        if any(getattr(document, f) is not None for f in LOCKED_PDF_FIELDS):
            for field in LOCKED_PDF_FIELDS:
                setattr(document, field, None)
            cleared += 1

    missing = [
        str(d.id)
        for d in documents
        if d.status != DocumentStatus.draft and not d.locked_pdf_reference
    ]
    if missing:
        logger.warning(
            "Family %s has issued versions without a locked PDF: %s",
            family_id,
            ", ".join(missing),
        )
    db.flush()
    return {
        "family_id": str(family_id),
        "superseded": superseded,
        "drafts_cleared": cleared,
        "missing_locked_pdf": missing,
    }
