from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context, get_db, get_renderer, get_store
from app.schemas.common import ListResponse
from app.schemas.lifecycle import (
    DownloadURLResponse,
    ForkRead,
    ForkRequest,
    IssueRead,
    PdfVerifyResponse,
    ReadinessRead,
)
from app.schemas.snapshot import SnapshotRead, SnapshotSummaryRead
from app.services import forking, issuance, pdf_export
from app.services.context import ActorContext
from app.services.snapshots import snapshots

router = APIRouter(tags=["issuance"])


def pdf_response(download: pdf_export.PdfDownload, headers: dict | None = None):
    return Response(
        content=download.data,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{download.file_name}"',
            "X-PDF-Source": download.source,
            "X-PDF-SHA256": download.checksum,
            **(headers or {}),
        },
    )


# ------------------------------------------------------------------
# Fork & issue
# ------------------------------------------------------------------


@router.post(
    "/families/{family_id}/fork",
    response_model=ForkRead,
    status_code=status.HTTP_201_CREATED,
)
def fork_new_version(
    family_id: str,
    payload: ForkRequest | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    payload = payload or ForkRequest()
    result = forking.fork_new_version(
        db, ctx, family_id, carry_forward_evidence=payload.carry_forward_evidence
    )
    return {
        "document": result.document,
        "carried_actions": result.carried_actions,
        "carried_evidence": result.carried_evidence,
        "warnings": result.warnings,
    }


@router.get("/documents/{document_id}/readiness", response_model=ReadinessRead)
def get_readiness(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return issuance.check_readiness(db, ctx, document_id)


@router.post("/documents/{document_id}/issue", response_model=IssueRead)
def issue_document(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
    renderer=Depends(get_renderer),
    store=Depends(get_store),
):
    result = issuance.issue(db, ctx, document_id, renderer=renderer, store=store)
    if not result.issued:
        # Storage was unavailable: hand the rendered PDF back so the user is
        # not left empty-handed; the document stays a draft.
        document = result.document
        return pdf_response(
            pdf_export.PdfDownload(
                data=result.fallback_pdf,
                source="unlocked",
                file_name=f"document-v{document.version_number}-UNLOCKED.pdf",
                checksum=result.pdf_checksum,
            ),
            headers={
                "X-Issue-Status": "not_issued",
                "X-Issue-Error": (result.error or "upload failed")[:200],
            },
        )
    return {
        "document": result.document,
        "issued": True,
        "pdf_checksum": result.pdf_checksum,
        "superseded_document_ids": result.superseded_document_ids,
        "warnings": result.warnings,
    }


# ------------------------------------------------------------------
# PDF export & integrity
# ------------------------------------------------------------------


@router.get("/documents/{document_id}/pdf")
def download_pdf(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
    renderer=Depends(get_renderer),
    store=Depends(get_store),
):
    download = pdf_export.get_downloadable_pdf(
        db, ctx, document_id, renderer=renderer, store=store
    )
    return pdf_response(download)


@router.post("/documents/{document_id}/pdf/verify", response_model=PdfVerifyResponse)
def verify_pdf(
    document_id: str,
    candidate: bytes = Body(..., media_type="application/pdf"),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    valid = pdf_export.verify_integrity(db, ctx, document_id, candidate)
    return {"document_id": document_id, "valid": valid}


@router.get("/documents/{document_id}/pdf/url", response_model=DownloadURLResponse)
def get_pdf_download_url(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    url = pdf_export.locked_pdf_download_url(db, ctx, document_id)
    return {"download_url": url}


# ------------------------------------------------------------------
# Snapshots
# ------------------------------------------------------------------


@router.get(
    "/families/{family_id}/snapshots",
    response_model=ListResponse[SnapshotSummaryRead],
)
def list_snapshots(
    family_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return snapshots.list_response(db, ctx, family_id, limit, offset)


@router.get(
    "/families/{family_id}/snapshots/{revision_number}",
    response_model=SnapshotRead,
)
def get_snapshot(
    family_id: str,
    revision_number: int,
    snapshot_status: str = Query(
        default="issued", alias="status", pattern="^(draft|issued)$"
    ),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return snapshots.get(db, ctx, family_id, revision_number, snapshot_status)
