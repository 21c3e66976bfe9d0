import enum
import logging
import uuid

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    document_created = "document.created"
    document_updated = "document.updated"
    document_discarded = "document.discarded"
    document_forked = "document.forked"
    document_issued = "document.issued"
    document_issue_failed = "document.issue_failed"
    document_superseded = "document.superseded"

    module_updated = "module.updated"
    module_completed = "module.completed"

    action_created = "action.created"
    action_updated = "action.updated"
    action_closed = "action.closed"
    action_reopened = "action.reopened"
    action_deleted = "action.deleted"

    evidence_added = "evidence.added"
    evidence_updated = "evidence.updated"
    evidence_removed = "evidence.removed"

    access_token_created = "access_token.created"
    access_token_revoked = "access_token.revoked"
    access_token_resolved = "access_token.resolved"

    pdf_integrity_mismatch = "pdf.integrity_mismatch"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor_id: str | uuid.UUID | None = None,
    document_id: str | uuid.UUID | None = None,
    organisation_id: str | uuid.UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task that appends the event to the lifecycle audit log.
    Never raises; failures are logged and dropped.
    """
    try:
        from app.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=str(actor_id) if actor_id else None,
            document_id=str(document_id) if document_id else None,
            organisation_id=str(organisation_id) if organisation_id else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.warning(
            "Failed to publish event %s: %s",
            event_type.value,
            e,
            extra={"auxiliary": True},
        )
