from celery import Celery

from app.config import settings


def _default_broker() -> str:
    # Import-safe without Redis (tests, local scripts).
    return settings.celery_broker_url or "memory://"


def _default_backend() -> str:
    return settings.celery_result_backend or "cache+memory://"


celery_app = Celery(
    "doc_lifecycle",
    broker=_default_broker(),
    backend=_default_backend(),
    include=[
        "app.tasks.events",
        "app.tasks.reconciliation",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "reconcile-document-families": {
            "task": "app.tasks.reconciliation.reconcile_document_families",
            "schedule": float(settings.reconcile_interval_seconds),
        },
    },
)
