from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context, get_db
from app.schemas.actions import ActionClose, ActionCreate, ActionRead, ActionUpdate
from app.schemas.common import ListResponse
from app.schemas.evidence import (
    EvidenceCreate,
    EvidenceRead,
    EvidenceUpdate,
    EvidenceUploadRequest,
    EvidenceUploadResponse,
)
from app.services import actions as action_service
from app.services import evidence as evidence_service
from app.services.context import ActorContext

router = APIRouter(tags=["actions"])


# ------------------------------------------------------------------
# Action items
# ------------------------------------------------------------------


@router.post(
    "/documents/{document_id}/actions",
    response_model=ActionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_action(
    document_id: str,
    payload: ActionCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.create(db, ctx, document_id, payload)


@router.get(
    "/documents/{document_id}/actions", response_model=ListResponse[ActionRead]
)
def list_actions(
    document_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None, pattern="^P[1-4]$"),
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="asc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.list_response(
        db,
        ctx,
        document_id,
        status_filter,
        priority,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.get("/actions/{action_id}", response_model=ActionRead)
def get_action(
    action_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.get(db, ctx, action_id)


@router.patch("/actions/{action_id}", response_model=ActionRead)
def update_action(
    action_id: str,
    payload: ActionUpdate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.update(db, ctx, action_id, payload)


@router.post("/actions/{action_id}/close", response_model=ActionRead)
def close_action(
    action_id: str,
    payload: ActionClose | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.close(db, ctx, action_id, payload or ActionClose())


@router.post("/actions/{action_id}/reopen", response_model=ActionRead)
def reopen_action(
    action_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return action_service.actions.reopen(db, ctx, action_id)


@router.delete("/actions/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_action(
    action_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    action_service.actions.delete(db, ctx, action_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ------------------------------------------------------------------
# Evidence references
# ------------------------------------------------------------------


@router.post(
    "/documents/{document_id}/evidence/upload-url",
    response_model=EvidenceUploadResponse,
)
def request_evidence_upload(
    document_id: str,
    payload: EvidenceUploadRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return evidence_service.evidence.request_upload(db, ctx, document_id, payload)


@router.post(
    "/documents/{document_id}/evidence",
    response_model=EvidenceRead,
    status_code=status.HTTP_201_CREATED,
)
def create_evidence(
    document_id: str,
    payload: EvidenceCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return evidence_service.evidence.create(db, ctx, document_id, payload)


@router.get("/documents/{document_id}/evidence", response_model=list[EvidenceRead])
def list_evidence(
    document_id: str,
    action_id: str | None = None,
    module_key: str | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return evidence_service.evidence.list(db, ctx, document_id, action_id, module_key)


@router.patch("/evidence/{evidence_id}", response_model=EvidenceRead)
def update_evidence(
    evidence_id: str,
    payload: EvidenceUpdate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return evidence_service.evidence.update(db, ctx, evidence_id, payload)


@router.delete("/evidence/{evidence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_evidence(
    evidence_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    evidence_service.evidence.delete(db, ctx, evidence_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
