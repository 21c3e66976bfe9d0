"""Create the next draft of a document family from its issued baseline.

The primary path (new draft row, module data, carried actions) commits in
one transaction or not at all.  Auxiliary steps run in savepoints: when one
fails the fork still succeeds and the failure is reported as a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import DraftAlreadyExistsError, NoIssuedBaselineError
from app.models.lifecycle import (
    CARRY_FORWARD_STATUSES,
    ActionItem,
    Document,
    DocumentStatus,
    EvidenceReference,
    ModuleInstance,
    SnapshotStatus,
)
from app.observability import FORKS_TOTAL
from app.services import lifecycle
from app.services.common import coerce_uuid
from app.services.context import ActorContext
from app.services.event import EventType, publish_event
from app.services.snapshots import build_payload, snapshots

logger = logging.getLogger(__name__)


@dataclass
class ForkResult:
    document: Document
    carried_actions: int = 0
    carried_evidence: int = 0
    warnings: list[str] = field(default_factory=list)


def _carry_forward_actions(
    db: Session, baseline: Document, draft: Document
) -> dict:
    """Copy eligible actions onto the draft; returns old id -> new id."""
    stmt = (
        select(ActionItem)
        .where(
            ActionItem.document_id == baseline.id,
            ActionItem.deleted_at.is_(None),
            ActionItem.status.in_(CARRY_FORWARD_STATUSES),
        )
        .order_by(ActionItem.created_at.asc())
    )
    id_map = {}
    for action in db.scalars(stmt).all():
        copy = ActionItem(
            organisation_id=draft.organisation_id,
            document_id=draft.id,
            module_key=action.module_key,
            recommended_action=action.recommended_action,
            status=action.status,
            priority=action.priority,
            timescale=action.timescale,
            target_date=action.target_date,
            owner_id=action.owner_id,
            source_document_id=action.source_document_id or baseline.id,
            origin_action_id=action.origin_action_id or action.id,
            carried_from_document_id=baseline.id,
            created_by=action.created_by,
        )
        db.add(copy)
        db.flush()
        id_map[action.id] = copy.id
    return id_map


def _carry_forward_evidence(
    db: Session, baseline: Document, draft: Document, action_map: dict
) -> int:
    """Duplicate evidence references; the stored bytes are shared, not copied."""
    stmt = (
        select(EvidenceReference)
        .where(
            EvidenceReference.document_id == baseline.id,
            EvidenceReference.deleted_at.is_(None),
        )
        .order_by(EvidenceReference.created_at.asc())
    )
    count = 0
    for item in db.scalars(stmt).all():
        # Evidence linked to an action that did not carry forward stays
        # behind with that action.
        if item.action_id is not None and item.action_id not in action_map:
            continue
        db.add(
            EvidenceReference(
                organisation_id=draft.organisation_id,
                document_id=draft.id,
                family_id=draft.family_id,
                action_id=action_map.get(item.action_id),
                module_key=item.module_key,
                storage_path=item.storage_path,
                file_name=item.file_name,
                mime_type=item.mime_type,
                size_bytes=item.size_bytes,
                caption=item.caption,
                carried_from_document_id=baseline.id,
                uploaded_by=item.uploaded_by,
            )
        )
        count += 1
    db.flush()
    return count


def fork_new_version(
    db: Session,
    ctx: ActorContext,
    family_id,
    carry_forward_evidence: bool = True,
) -> ForkResult:
    family_id = coerce_uuid(family_id)
    baseline = lifecycle.latest_issued(db, family_id, ctx.organisation_id)
    if baseline is None:
        FORKS_TOTAL.labels("no_baseline").inc()
        raise NoIssuedBaselineError(details={"family_id": str(family_id)})

    existing = lifecycle.active_draft(db, family_id)
    if existing is not None:
        FORKS_TOTAL.labels("draft_exists").inc()
        raise DraftAlreadyExistsError(
            details={
                "family_id": str(family_id),
                "draft_document_id": str(existing.id),
            }
        )

    baseline_payload = snapshots.issued_baseline(db, baseline)
    metadata = baseline_payload.metadata

    draft = Document(
        organisation_id=baseline.organisation_id,
        family_id=family_id,
        version_number=baseline.version_number + 1,
        status=DocumentStatus.draft,
        title=metadata.title,
        document_type=metadata.document_type,
        enabled_modules=(
            [k.value for k in metadata.enabled_modules]
            if metadata.enabled_modules
            else None
        ),
        assessment_date=metadata.assessment_date or date.today(),
        summary_rating=metadata.summary_rating,
        metadata_=dict(metadata.extra) or None,
        created_by=ctx.actor_id,
    )
    result = ForkResult(document=draft)

    try:
        db.add(draft)
        db.flush()
        for module in baseline_payload.modules:
            db.add(
                ModuleInstance(
                    organisation_id=draft.organisation_id,
                    document_id=draft.id,
                    module_key=module.module_key,
                    payload=dict(module.payload),
                    outcome=module.outcome,
                    completed_at=module.completed_at,
                )
            )
        db.flush()
        action_map = _carry_forward_actions(db, baseline, draft)
        result.carried_actions = len(action_map)
    except IntegrityError as e:
        db.rollback()
        FORKS_TOTAL.labels("draft_exists").inc()
        logger.info("Concurrent fork rejected for family %s: %s", family_id, e.orig)
        raise DraftAlreadyExistsError(details={"family_id": str(family_id)}) from e
    except SQLAlchemyError:
        db.rollback()
        FORKS_TOTAL.labels("error").inc()
        logger.exception("Fork of family %s failed; nothing was created", family_id)
        raise

    if carry_forward_evidence:
        try:
            with db.begin_nested():
                result.carried_evidence = _carry_forward_evidence(
                    db, baseline, draft, action_map
                )
        except SQLAlchemyError as e:
            result.carried_evidence = 0
            result.warnings.append("Evidence could not be carried forward")
            logger.warning(
                "Evidence carry-forward failed for draft %s: %s",
                draft.id,
                e,
                extra={"auxiliary": True, "document_id": str(draft.id)},
            )

    try:
        with db.begin_nested():
            snapshots.write(
                db, ctx, draft, SnapshotStatus.draft, build_payload(db, draft)
            )
    except SQLAlchemyError as e:
        result.warnings.append("Draft snapshot was not recorded")
        logger.warning(
            "Fork-time draft snapshot failed for %s: %s",
            draft.id,
            e,
            extra={"auxiliary": True, "document_id": str(draft.id)},
        )

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        FORKS_TOTAL.labels("draft_exists").inc()
        raise DraftAlreadyExistsError(details={"family_id": str(family_id)}) from e
    db.refresh(draft)

    FORKS_TOTAL.labels("success").inc()
    logger.info(
        "Forked v%d from v%d in family %s (%d actions, %d evidence)",
        draft.version_number,
        baseline.version_number,
        family_id,
        result.carried_actions,
        result.carried_evidence,
    )
    publish_event(
        EventType.document_forked,
        entity_type="document",
        entity_id=draft.id,
        actor_id=ctx.actor_id,
        document_id=draft.id,
        organisation_id=ctx.organisation_id,
        payload={
            "baseline_document_id": str(baseline.id),
            "version_number": draft.version_number,
            "carried_actions": result.carried_actions,
            "carried_evidence": result.carried_evidence,
            "warnings": result.warnings,
        },
    )
    return result
