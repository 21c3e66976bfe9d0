import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

import uuid  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: F401,E402
from app.db import Base  # noqa: E402
from app.services.context import ActorContext  # noqa: E402
from app.services.pdf_renderer import RenderError  # noqa: E402
from app.services.storage import StorageError  # noqa: E402

# Modules every FRA document must complete before it can be issued.
FRA_REQUIRED = ("A1_DOC_CONTROL", "FRA_4_SIGNIFICANT_FINDINGS")


class FakeRenderer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def render(self, payload: dict) -> bytes:
        self.calls.append(payload)
        if self.fail:
            raise RenderError("renderer unavailable")
        return (
            b"%PDF-1.4\n"
            + f"{payload['document_id']} v{payload['version_number']} "
            f"{len(self.calls)}".encode()
        )


class FakeStore:
    def __init__(self, fail_put: bool = False, fail_get: bool = False):
        self.objects = {}
        self.fail_put = fail_put
        self.fail_get = fail_get

    def put_bytes(self, path, data, content_type="application/pdf"):
        if self.fail_put:
            raise StorageError("bucket unreachable")
        self.objects[path] = data

    def get_bytes(self, path):
        if self.fail_get or path not in self.objects:
            raise StorageError(f"no object at {path}")
        return self.objects[path]

    def generate_download_url(self, path):
        return f"https://storage.example.com/{path}"


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; take over so SAVEPOINT works.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def _no_event_dispatch():
    with patch("app.tasks.events.process_event.delay") as mock_delay:
        yield mock_delay


@pytest.fixture()
def ctx():
    return ActorContext(actor_id=uuid.uuid4(), organisation_id=uuid.uuid4())


@pytest.fixture()
def other_ctx():
    return ActorContext(actor_id=uuid.uuid4(), organisation_id=uuid.uuid4())


@pytest.fixture()
def renderer():
    return FakeRenderer()


@pytest.fixture()
def store():
    return FakeStore()


def _make_draft(db_session, ctx, title="Warehouse FRA", document_type="FRA", **kw):
    from app.schemas.lifecycle import DocumentCreate
    from app.services.documents import documents

    return documents.create(
        db_session,
        ctx,
        DocumentCreate(title=title, document_type=document_type, **kw),
    )


def _complete_modules(db_session, ctx, document, keys=FRA_REQUIRED):
    from app.schemas.lifecycle import ModuleComplete, ModuleUpsert
    from app.services.modules import modules

    for key in keys:
        modules.upsert(
            db_session,
            ctx,
            str(document.id),
            key,
            ModuleUpsert(payload={"reviewed": True, "notes": f"{key} notes"}),
        )
        modules.complete(
            db_session, ctx, str(document.id), key, ModuleComplete(outcome="compliant")
        )


def _add_action(db_session, ctx, document, text="Repair fire door", **kw):
    from app.schemas.actions import ActionCreate
    from app.services.actions import actions

    return actions.create(
        db_session,
        ctx,
        str(document.id),
        ActionCreate(recommended_action=text, **kw),
    )


@pytest.fixture()
def make_draft(db_session, ctx):
    def _factory(ctx=ctx, **kw):
        return _make_draft(db_session, ctx, **kw)

    return _factory


@pytest.fixture()
def complete_modules(db_session, ctx):
    def _factory(document, keys=FRA_REQUIRED, ctx=ctx):
        _complete_modules(db_session, ctx, document, keys)

    return _factory


@pytest.fixture()
def add_action(db_session, ctx):
    def _factory(document, text="Repair fire door", ctx=ctx, **kw):
        return _add_action(db_session, ctx, document, text, **kw)

    return _factory


@pytest.fixture()
def issue_document(db_session, ctx, renderer, store):
    from app.services.issuance import issue

    def _factory(document, ctx=ctx):
        result = issue(db_session, ctx, document.id, renderer=renderer, store=store)
        assert result.issued
        return result.document

    return _factory


@pytest.fixture()
def ready_draft(db_session, ctx):
    document = _make_draft(db_session, ctx)
    _complete_modules(db_session, ctx, document)
    return document


@pytest.fixture()
def issued_document(ready_draft, issue_document):
    return issue_document(ready_draft)


@pytest.fixture()
def client(db_session, renderer, store):
    from fastapi.testclient import TestClient

    from app.api.deps import get_db, get_renderer, get_store
    from app.main import app as fastapi_app

    def _get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_renderer] = lambda: renderer
    fastapi_app.dependency_overrides[get_store] = lambda: store
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(ctx):
    return {
        "X-Actor-Id": str(ctx.actor_id),
        "X-Organisation-Id": str(ctx.organisation_id),
    }


@pytest.fixture()
def failing_renderer():
    return FakeRenderer(fail=True)


@pytest.fixture()
def failing_store():
    return FakeStore(fail_put=True)
