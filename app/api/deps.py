import uuid

from fastapi import Header, HTTPException

from app.db import SessionLocal
from app.services.context import ActorContext
from app.services.pdf_renderer import renderer
from app.services.storage import storage


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _header_uuid(value: str | None, name: str) -> uuid.UUID:
    if not value:
        raise HTTPException(status_code=401, detail=f"Missing {name} header")
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {name} header")


def get_actor_context(
    x_actor_id: str | None = Header(default=None),
    x_organisation_id: str | None = Header(default=None),
) -> ActorContext:
    """Identity asserted by the authenticating gateway in front of this service."""
    return ActorContext(
        actor_id=_header_uuid(x_actor_id, "X-Actor-Id"),
        organisation_id=_header_uuid(x_organisation_id, "X-Organisation-Id"),
    )


def get_renderer():
    return renderer


def get_store():
    return storage
