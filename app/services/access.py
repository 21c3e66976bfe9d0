"""External access links for document families.

A token names a family, never a version: every resolution returns whatever
is the latest issued version at that moment, and validity (revocation and
expiry) is re-checked on every access.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    NoIssuedVersionError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenRevokedError,
)
from app.models.lifecycle import AccessToken, Document
from app.observability import TOKEN_RESOLUTIONS_TOTAL
from app.schemas.access import AccessTokenCreate, AccessTokenRevoke
from app.services import lifecycle, pdf_export
from app.services.common import coerce_uuid
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.pdf_renderer import PdfRenderer
from app.services.storage import ContentStore

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _load_token(db: Session, token: str) -> AccessToken:
    if not token:
        TOKEN_RESOLUTIONS_TOTAL.labels("not_found").inc()
        raise TokenNotFoundError()
    row = db.scalars(select(AccessToken).where(AccessToken.token == token)).first()
    if row is None:
        TOKEN_RESOLUTIONS_TOTAL.labels("not_found").inc()
        raise TokenNotFoundError()
    return row


def _check_valid(row: AccessToken) -> None:
    if row.revoked_at is not None:
        TOKEN_RESOLUTIONS_TOTAL.labels("revoked").inc()
        raise TokenRevokedError()
    if _as_utc(row.expires_at) <= datetime.now(timezone.utc):
        TOKEN_RESOLUTIONS_TOTAL.labels("expired").inc()
        raise TokenExpiredError()


def _resolve(db: Session, token: str) -> tuple[AccessToken, Document]:
    row = _load_token(db, token)
    _check_valid(row)
    document = lifecycle.latest_issued(db, row.family_id, row.organisation_id)
    if document is None:
        TOKEN_RESOLUTIONS_TOTAL.labels("no_issued_version").inc()
        raise NoIssuedVersionError()
    row.access_count = (row.access_count or 0) + 1
    row.last_accessed_at = datetime.now(timezone.utc)
    db.commit()
    TOKEN_RESOLUTIONS_TOTAL.labels("success").inc()
    publish_event(
        EventType.access_token_resolved,
        entity_type="access_token",
        entity_id=row.id,
        document_id=document.id,
        organisation_id=row.organisation_id,
        payload={"version_number": document.version_number},
    )
    return row, document


class AccessTokens:
    @staticmethod
    def create(
        db: Session, ctx: ActorContext, family_id: str, payload: AccessTokenCreate
    ) -> AccessToken:
        family_id = coerce_uuid(family_id)
        exists = db.scalars(
            select(Document.id).where(
                Document.family_id == family_id,
                Document.organisation_id == ctx.organisation_id,
            )
        ).first()
        if exists is None:
            raise HTTPException(status_code=404, detail="Document family not found")

        days = payload.expires_in_days or settings.access_token_default_days
        if days > settings.access_token_max_days:
            raise HTTPException(
                status_code=400,
                detail=f"Links may last at most {settings.access_token_max_days} days",
            )

        row = AccessToken(
            organisation_id=ctx.organisation_id,
            family_id=family_id,
            token=secrets.token_urlsafe(32),
            label=payload.label,
            expires_at=datetime.now(timezone.utc) + timedelta(days=days),
            created_by=ctx.actor_id,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info("Created access token %s for family %s", row.id, family_id)
        publish_event(
            EventType.access_token_created,
            entity_type="access_token",
            entity_id=row.id,
            actor_id=ctx.actor_id,
            organisation_id=ctx.organisation_id,
            payload={"family_id": str(family_id), "expires_in_days": days},
        )
        return row

    @staticmethod
    def list(db: Session, ctx: ActorContext, family_id: str) -> list[AccessToken]:
        stmt = (
            select(AccessToken)
            .where(
                AccessToken.family_id == coerce_uuid(family_id),
                AccessToken.organisation_id == ctx.organisation_id,
            )
            .order_by(AccessToken.created_at.desc())
        )
        return db.scalars(stmt).all()

    @staticmethod
    def revoke(
        db: Session, ctx: ActorContext, token_id: str, payload: AccessTokenRevoke
    ) -> AccessToken:
        row = db.get(AccessToken, coerce_uuid(token_id))
        if not row or row.organisation_id != ctx.organisation_id:
            raise HTTPException(status_code=404, detail="Access token not found")
        if row.revoked_at is not None:
            return row
        row.revoked_at = datetime.now(timezone.utc)
        row.revoked_by = ctx.actor_id
        row.revoke_reason = payload.reason
        db.commit()
        db.refresh(row)
        logger.info("Revoked access token %s", row.id)
        publish_event(
            EventType.access_token_revoked,
            entity_type="access_token",
            entity_id=row.id,
            actor_id=ctx.actor_id,
            organisation_id=ctx.organisation_id,
            payload={"reason": payload.reason},
        )
        return row

    @staticmethod
    def resolve_public(db: Session, token: str) -> dict:
        row, document = _resolve(db, token)
        logger.info(
            "Access token %s resolved to document %s (v%d)",
            row.id,
            document.id,
            document.version_number,
        )
        return {
            "title": document.title,
            "document_type": document.document_type,
            "version_number": document.version_number,
            "issued_at": document.issued_at,
            "assessment_date": document.assessment_date,
            "summary_rating": document.summary_rating,
            "has_pdf": bool(document.locked_pdf_reference),
        }

    @staticmethod
    def public_pdf(
        db: Session,
        token: str,
        renderer: PdfRenderer | None = None,
        store: ContentStore | None = None,
    ) -> pdf_export.PdfDownload:
        _, document = _resolve(db, token)
        return pdf_export.pdf_for_document(db, document, renderer, store)


access_tokens = AccessTokens()
