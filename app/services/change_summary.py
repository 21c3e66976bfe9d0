from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.lifecycle import (
    CARRY_FORWARD_STATUSES,
    ActionItem,
    ActionStatus,
    ChangeSummary,
    Document,
    DocumentStatus,
)
from app.services import lifecycle
from app.services.context import ActorContext

logger = logging.getLogger(__name__)


def _active_actions(db: Session, document_id) -> list[ActionItem]:
    return db.scalars(
        select(ActionItem)
        .where(
            ActionItem.document_id == document_id,
            ActionItem.deleted_at.is_(None),
        )
        .order_by(ActionItem.created_at.asc())
    ).all()


def _brief(action: ActionItem) -> dict:
    return {
        "id": str(action.id),
        "recommended_action": action.recommended_action,
        "priority": action.priority.value,
        "status": action.status.value,
    }


def _previous_issue(db: Session, document: Document) -> Document | None:
    stmt = (
        select(Document)
        .where(
            Document.family_id == document.family_id,
            Document.version_number < document.version_number,
            Document.status.in_([DocumentStatus.issued, DocumentStatus.superseded]),
        )
        .order_by(Document.version_number.desc())
    )
    return db.scalars(stmt).first()


def format_summary_text(summary: ChangeSummary) -> str:
    if summary.previous_document_id is None:
        lines = ["# Initial Issue", ""]
    else:
        lines = ["# Changes Since Last Issue", ""]
    if summary.new_actions_count:
        lines.append(f"## New Actions ({summary.new_actions_count})")
        for action in summary.new_actions or []:
            lines.append(f"- [{action['priority']}] {action['recommended_action']}")
        lines.append("")
    if summary.closed_actions_count:
        lines.append(f"## Closed Actions ({summary.closed_actions_count})")
        for action in summary.closed_actions or []:
            lines.append(f"- [{action['priority']}] {action['recommended_action']}")
        lines.append("")
    if summary.outstanding_actions_count:
        lines.append(f"## Outstanding Actions: {summary.outstanding_actions_count}")
        lines.append("")
    if not summary.has_material_changes:
        lines.append("_No material changes since last issue._")
    return "\n".join(lines).strip() + "\n"


def generate(db: Session, ctx: ActorContext, document: Document) -> ChangeSummary:
    """Compare an issued document's actions with the previous issue.

    New actions are the ones raised in this version; closed actions are
    carried items closed during it. Flushes, the caller commits.
    """
    previous = _previous_issue(db, document)
    current = _active_actions(db, document.id)

    if previous is None:
        new_actions = current
        closed = [a for a in current if a.status == ActionStatus.closed]
    else:
        new_actions = [a for a in current if a.carried_from_document_id is None]
        closed = [
            a
            for a in current
            if a.carried_from_document_id is not None
            and a.status == ActionStatus.closed
        ]
    outstanding = [a for a in current if a.status in CARRY_FORWARD_STATUSES]

    summary = ChangeSummary(
        organisation_id=document.organisation_id,
        document_id=document.id,
        previous_document_id=previous.id if previous else None,
        version_number=document.version_number,
        new_actions_count=len(new_actions),
        closed_actions_count=len(closed),
        outstanding_actions_count=len(outstanding),
        new_actions=[_brief(a) for a in new_actions],
        closed_actions=[_brief(a) for a in closed],
        has_material_changes=bool(new_actions or closed),
        generated_by=ctx.actor_id,
    )
    summary.summary_text = format_summary_text(summary)
    db.add(summary)
    db.flush()
    logger.info(
        "Change summary for %s: %d new, %d closed, %d outstanding",
        document.id,
        summary.new_actions_count,
        summary.closed_actions_count,
        summary.outstanding_actions_count,
    )
    return summary


def get(db: Session, ctx: ActorContext, document_id) -> ChangeSummary:
    document = lifecycle.load_document(db, ctx, document_id)
    summary = db.scalars(
        select(ChangeSummary).where(ChangeSummary.document_id == document.id)
    ).first()
    if not summary:
        raise HTTPException(status_code=404, detail="Change summary not found")
    return summary
