import logging

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.tasks.reconciliation.reconcile_document_families", ignore_result=True
)
def reconcile_document_families() -> None:
    """Periodic repair of families an interrupted issuance left inconsistent.

    Finds families with more than one issued version, drafts carrying locked
    PDF fields, or issued versions without a locked PDF, and reconciles each
    in its own transaction.
    """
    from sqlalchemy import func, or_, select

    from app.db import SessionLocal
    from app.models.lifecycle import Document, DocumentStatus
    from app.services.lifecycle import reconcile_family

    db = SessionLocal()
    try:
        multi_issued = (
            select(Document.family_id)
            .where(Document.status == DocumentStatus.issued)
            .group_by(Document.family_id)
            .having(func.count(Document.id) > 1)
        )
        dirty_drafts = select(Document.family_id).where(
            Document.status == DocumentStatus.draft,
            or_(
                Document.locked_pdf_reference.is_not(None),
                Document.locked_pdf_checksum.is_not(None),
            ),
        )
        missing_pdf = select(Document.family_id).where(
            Document.status != DocumentStatus.draft,
            Document.locked_pdf_reference.is_(None),
        )
        family_ids = set(db.scalars(multi_issued).all())
        family_ids |= set(db.scalars(dirty_drafts).all())
        family_ids |= set(db.scalars(missing_pdf).all())

        repaired = 0
        for family_id in family_ids:
            try:
                report = reconcile_family(db, family_id)
                db.commit()
                if report["superseded"] or report["drafts_cleared"]:
                    repaired += 1
            except Exception as e:
                db.rollback()
                logger.warning("Failed to reconcile family %s: %s", family_id, e)

        logger.info(
            "Reconciled %d of %d flagged document families", repaired, len(family_ids)
        )
    except Exception as e:
        logger.exception("Failed to reconcile document families: %s", e)
    finally:
        db.close()
