"""Persistence-level enforcement of the document lifecycle.

Registered once on the ``Session`` class so that every session in the
process, including the ones Celery tasks open, goes through it.  The service
layer checks editability first and fails fast with a row lock held; these
listeners are the last line that no code path can skip.
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.errors import (
    InvalidTransitionError,
    LockedDocumentError,
    SnapshotImmutableError,
)
from app.models.lifecycle import (
    LIFECYCLE_FIELDS,
    LOCKED_PDF_FIELDS,
    ActionItem,
    Document,
    DocumentStatus,
    EvidenceReference,
    ModuleInstance,
    RevisionSnapshot,
)

logger = logging.getLogger(__name__)

_DRAFT_ONLY = (ModuleInstance, ActionItem, EvidenceReference)

_ALLOWED_TRANSITIONS = {
    DocumentStatus.draft: {DocumentStatus.issued},
    DocumentStatus.issued: {DocumentStatus.superseded},
    DocumentStatus.superseded: set(),
}


def committed_status(document: Document) -> DocumentStatus:
    """Status as last loaded from the database, ignoring pending changes."""
    state = inspect(document)
    if state.pending or state.transient:
        return document.status
    history = state.attrs.status.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return document.status


def _changed_columns(obj) -> set[str]:
    state = inspect(obj)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


def _check_document_update(document: Document) -> None:
    before = committed_status(document)
    after = document.status
    if before != after and after not in _ALLOWED_TRANSITIONS[before]:
        raise InvalidTransitionError(
            f"Cannot change status from {before.value} to {after.value}",
            details={"document_id": str(document.id)},
        )
    if before == DocumentStatus.draft:
        return
    illegal = _changed_columns(document) - LIFECYCLE_FIELDS
    if illegal:
        raise LockedDocumentError(
            details={"document_id": str(document.id), "fields": sorted(illegal)}
        )


def _clear_locked_fields_on_draft(document: Document) -> None:
    if document.status != DocumentStatus.draft:
        return
    carried = [f for f in LOCKED_PDF_FIELDS if getattr(document, f) is not None]
    if not carried:
        return
    logger.warning(
        "Clearing locked PDF fields on draft document %s",
        document.id,
        extra={"document_id": str(document.id), "fields": carried},
    )
    for field in carried:
        setattr(document, field, None)


def _check_child(session: Session, obj) -> None:
    document = obj.document
    if document is None and obj.document_id is not None:
        document = session.get(Document, obj.document_id)
    if document is None:
        return
    if (
        committed_status(document) != DocumentStatus.draft
        or document.status != DocumentStatus.draft
    ):
        raise LockedDocumentError(
            details={
                "document_id": str(document.id),
                "entity": obj.__tablename__,
            }
        )


@event.listens_for(Session, "before_flush")
def enforce_lifecycle_rules(session, flush_context, instances):
    with session.no_autoflush:
        for obj in list(session.new):
            if isinstance(obj, Document):
                _clear_locked_fields_on_draft(obj)
            elif isinstance(obj, _DRAFT_ONLY):
                _check_child(session, obj)

        for obj in list(session.dirty):
            if not session.is_modified(obj, include_collections=False):
                continue
            if isinstance(obj, RevisionSnapshot):
                raise SnapshotImmutableError(details={"snapshot_id": str(obj.id)})
            if isinstance(obj, Document):
                _check_document_update(obj)
                _clear_locked_fields_on_draft(obj)
            elif isinstance(obj, _DRAFT_ONLY):
                _check_child(session, obj)

        for obj in list(session.deleted):
            if isinstance(obj, RevisionSnapshot):
                raise SnapshotImmutableError(details={"snapshot_id": str(obj.id)})
            if isinstance(obj, Document):
                if committed_status(obj) != DocumentStatus.draft:
                    raise LockedDocumentError(details={"document_id": str(obj.id)})
            elif isinstance(obj, _DRAFT_ONLY):
                _check_child(session, obj)
