import logging

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.events.process_event", ignore_result=True)
def process_event(
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    organisation_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Append a lifecycle event to the audit log.

    The log keeps full history; nothing here filters by issue date.
    """
    from app.db import SessionLocal
    from app.models.lifecycle import LifecycleEvent
    from app.services.common import coerce_uuid

    logger.info("Processing event %s for %s/%s", event_type, entity_type, entity_id)
    db = SessionLocal()
    try:
        db.add(
            LifecycleEvent(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=coerce_uuid(actor_id),
                document_id=coerce_uuid(document_id),
                organisation_id=coerce_uuid(organisation_id),
                payload=payload or {},
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Failed to record event %s: %s", event_type, e)
    finally:
        db.close()
