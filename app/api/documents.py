from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context, get_db
from app.schemas.common import ListResponse
from app.schemas.lifecycle import (
    ChangeSummaryRead,
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    FamilyHealthRead,
    LockStatusRead,
    ModuleComplete,
    ModuleRead,
    ModuleUpsert,
    VersionRead,
)
from app.services import change_summary as change_summary_service
from app.services import documents as doc_service
from app.services import lifecycle
from app.services import modules as module_service
from app.services.context import ActorContext

router = APIRouter(tags=["documents"])


# ------------------------------------------------------------------
# Document CRUD
# ------------------------------------------------------------------


@router.post(
    "/documents", response_model=DocumentRead, status_code=status.HTTP_201_CREATED
)
def create_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.create(db, ctx, payload)


@router.get("/documents", response_model=ListResponse[DocumentRead])
def list_documents(
    status_filter: str | None = Query(default=None, alias="status"),
    document_type: str | None = None,
    family_id: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.list_response(
        db,
        ctx,
        status_filter,
        document_type,
        family_id,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.get("/documents/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.get(db, ctx, document_id)


@router.patch("/documents/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.update(db, ctx, document_id, payload)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_document(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    doc_service.documents.discard(db, ctx, document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/documents/{document_id}/lock", response_model=LockStatusRead)
def get_lock_status(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.lock_status(db, ctx, document_id)


@router.get(
    "/documents/{document_id}/change-summary", response_model=ChangeSummaryRead
)
def get_change_summary(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return change_summary_service.get(db, ctx, document_id)


# ------------------------------------------------------------------
# Families
# ------------------------------------------------------------------


@router.get("/families/{family_id}/versions", response_model=list[VersionRead])
def list_versions(
    family_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return doc_service.documents.list_versions(db, ctx, family_id)


@router.get("/families/{family_id}/health", response_model=FamilyHealthRead)
def get_family_health(
    family_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return lifecycle.family_health(db, ctx, family_id)


# ------------------------------------------------------------------
# Module instances
# ------------------------------------------------------------------


@router.get("/documents/{document_id}/modules", response_model=list[ModuleRead])
def list_modules(
    document_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return module_service.modules.list(db, ctx, document_id)


@router.get(
    "/documents/{document_id}/modules/{module_key}", response_model=ModuleRead
)
def get_module(
    document_id: str,
    module_key: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return module_service.modules.get(db, ctx, document_id, module_key)


@router.put(
    "/documents/{document_id}/modules/{module_key}", response_model=ModuleRead
)
def save_module(
    document_id: str,
    module_key: str,
    payload: ModuleUpsert,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return module_service.modules.upsert(db, ctx, document_id, module_key, payload)


@router.post(
    "/documents/{document_id}/modules/{module_key}/complete",
    response_model=ModuleRead,
)
def complete_module(
    document_id: str,
    module_key: str,
    payload: ModuleComplete | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return module_service.modules.complete(
        db, ctx, document_id, module_key, payload or ModuleComplete()
    )
