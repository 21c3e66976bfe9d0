from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context, get_db, get_renderer, get_store
from app.api.issuance import pdf_response
from app.schemas.access import (
    AccessTokenCreate,
    AccessTokenRead,
    AccessTokenRevoke,
    PublicDocumentSummary,
)
from app.services import access as access_service
from app.services.context import ActorContext

router = APIRouter(tags=["access-tokens"])

# Unauthenticated: the token is the credential.
public_router = APIRouter(prefix="/public", tags=["public"])


@router.post(
    "/families/{family_id}/access-tokens",
    response_model=AccessTokenRead,
    status_code=status.HTTP_201_CREATED,
)
def create_access_token(
    family_id: str,
    payload: AccessTokenCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return access_service.access_tokens.create(db, ctx, family_id, payload)


@router.get(
    "/families/{family_id}/access-tokens", response_model=list[AccessTokenRead]
)
def list_access_tokens(
    family_id: str,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return access_service.access_tokens.list(db, ctx, family_id)


@router.post("/access-tokens/{token_id}/revoke", response_model=AccessTokenRead)
def revoke_access_token(
    token_id: str,
    payload: AccessTokenRevoke | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(get_actor_context),
):
    return access_service.access_tokens.revoke(
        db, ctx, token_id, payload or AccessTokenRevoke()
    )


@public_router.get("/documents", response_model=PublicDocumentSummary)
def resolve_public_document(
    token: str = Query(min_length=1),
    db: Session = Depends(get_db),
):
    return access_service.access_tokens.resolve_public(db, token)


@public_router.get("/documents/pdf")
def download_public_pdf(
    token: str = Query(min_length=1),
    db: Session = Depends(get_db),
    renderer=Depends(get_renderer),
    store=Depends(get_store),
):
    download = access_service.access_tokens.public_pdf(
        db, token, renderer=renderer, store=store
    )
    return pdf_response(download)
