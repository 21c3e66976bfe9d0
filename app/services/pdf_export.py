"""Serve document PDFs and prove locked ones unchanged.

Issued and superseded documents are served from their locked object and
verified against the checksum recorded at issuance on every read.  Drafts
are rendered fresh every time; nothing about a draft PDF is cached.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.errors import PdfGenerationError, PdfIntegrityError
from app.models.lifecycle import Document, DocumentStatus, SnapshotStatus
from app.observability import PDF_DOWNLOADS_TOTAL, PDF_INTEGRITY_MISMATCH_TOTAL
from app.services import lifecycle
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.pdf_renderer import PdfRenderer, RenderError
from app.services.pdf_renderer import renderer as default_renderer
from app.services.snapshots import build_payload, snapshots
from app.services.storage import ContentStore, StorageError, storage as default_store

logger = logging.getLogger(__name__)

SOURCE_LOCKED = "locked"
SOURCE_DRAFT = "draft"
SOURCE_DEGRADED = "degraded"


@dataclass
class PdfDownload:
    data: bytes
    source: str
    file_name: str
    checksum: str


def _file_name(document: Document) -> str:
    base = re.sub(r"[^A-Za-z0-9._-]+", "_", document.title).strip("_") or "document"
    suffix = "-DRAFT" if document.status == DocumentStatus.draft else ""
    return f"{base}-v{document.version_number}{suffix}.pdf"


def _render(renderer: PdfRenderer, payload: dict, document: Document) -> bytes:
    try:
        return renderer.render(payload)
    except RenderError as e:
        logger.error("PDF render failed for %s: %s", document.id, e)
        raise PdfGenerationError(
            "PDF could not be generated", details={"error": str(e)}
        ) from e


def read_locked_pdf(document: Document, store: ContentStore) -> bytes:
    """Fetch the locked object and check it against the stored checksum."""
    try:
        data = store.get_bytes(document.locked_pdf_reference)
    except StorageError as e:
        logger.error("Locked PDF for %s unavailable: %s", document.id, e)
        raise HTTPException(
            status_code=502, detail="Locked PDF could not be retrieved"
        ) from e

    actual = hashlib.sha256(data).hexdigest()
    if actual != document.locked_pdf_checksum:
        PDF_INTEGRITY_MISMATCH_TOTAL.inc()
        logger.critical(
            "Locked PDF checksum mismatch for document %s: expected %s, got %s",
            document.id,
            document.locked_pdf_checksum,
            actual,
            extra={"document_id": str(document.id)},
        )
        publish_event(
            EventType.pdf_integrity_mismatch,
            entity_type="document",
            entity_id=document.id,
            document_id=document.id,
            organisation_id=document.organisation_id,
            payload={"expected": document.locked_pdf_checksum, "actual": actual},
        )
        raise PdfIntegrityError(details={"document_id": str(document.id)})
    return data


def pdf_for_document(
    db: Session,
    document: Document,
    renderer: PdfRenderer | None = None,
    store: ContentStore | None = None,
) -> PdfDownload:
    renderer = renderer or default_renderer
    store = store or default_store

    if document.status != DocumentStatus.draft and document.locked_pdf_reference:
        data = read_locked_pdf(document, store)
        source = SOURCE_LOCKED
    elif document.status == DocumentStatus.draft:
        payload = build_payload(db, document).model_dump(mode="json")
        data = _render(renderer, payload, document)
        source = SOURCE_DRAFT
    else:
        # Issued without a locked object: render from the frozen snapshot so
        # the output still reflects what was issued.
        logger.warning(
            "Document %s is %s but has no locked PDF; regenerating",
            document.id,
            document.status.value,
            extra={"document_id": str(document.id), "data_repair": True},
        )
        snapshot = snapshots.find(
            db, document.family_id, document.version_number, SnapshotStatus.issued
        )
        if snapshot is not None:
            payload = snapshots.load_verified(snapshot).model_dump(mode="json")
        else:
            payload = build_payload(db, document).model_dump(mode="json")
        data = _render(renderer, payload, document)
        source = SOURCE_DEGRADED

    PDF_DOWNLOADS_TOTAL.labels(source).inc()
    return PdfDownload(
        data=data,
        source=source,
        file_name=_file_name(document),
        checksum=hashlib.sha256(data).hexdigest(),
    )


def get_downloadable_pdf(
    db: Session,
    ctx: ActorContext,
    document_id,
    renderer: PdfRenderer | None = None,
    store: ContentStore | None = None,
) -> PdfDownload:
    document = lifecycle.load_document(db, ctx, document_id)
    return pdf_for_document(db, document, renderer, store)


def verify_integrity(
    db: Session, ctx: ActorContext, document_id, candidate: bytes
) -> bool:
    document = lifecycle.load_document(db, ctx, document_id)
    if not document.locked_pdf_checksum:
        logger.info("Document %s has no locked checksum to verify against", document.id)
        return False
    actual = hashlib.sha256(candidate).hexdigest()
    if actual != document.locked_pdf_checksum:
        PDF_INTEGRITY_MISMATCH_TOTAL.inc()
        logger.error(
            "PDF verification failed for document %s: expected %s, got %s",
            document.id,
            document.locked_pdf_checksum,
            actual,
            extra={"document_id": str(document.id)},
        )
        publish_event(
            EventType.pdf_integrity_mismatch,
            entity_type="document",
            entity_id=document.id,
            actor_id=ctx.actor_id,
            document_id=document.id,
            organisation_id=document.organisation_id,
            payload={
                "expected": document.locked_pdf_checksum,
                "actual": actual,
                "check": "verify",
            },
        )
        return False
    return True


def locked_pdf_download_url(db: Session, ctx: ActorContext, document_id) -> str:
    document = lifecycle.load_document(db, ctx, document_id)
    if not document.locked_pdf_reference:
        raise HTTPException(status_code=404, detail="Locked PDF not found")
    return default_store.generate_download_url(document.locked_pdf_reference)
