import uuid
from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from app.errors import InvalidTransitionError, LockedDocumentError
from app.models.lifecycle import Document, DocumentStatus, ModuleKind
from app.services import lifecycle


def _issued_row(db_session, ctx, family_id, version_number, **overrides):
    defaults = dict(
        organisation_id=ctx.organisation_id,
        family_id=family_id,
        version_number=version_number,
        status=DocumentStatus.issued,
        title=f"FRA v{version_number}",
        document_type=ModuleKind.fra,
        created_by=ctx.actor_id,
        issued_at=datetime.now(timezone.utc),
        locked_pdf_reference=f"org/{family_id}/v{version_number}/locked.pdf",
        locked_pdf_checksum="b" * 64,
    )
    defaults.update(overrides)
    document = Document(**defaults)
    db_session.add(document)
    db_session.commit()
    return document


class TestTransitions:
    def test_allowed_transitions(self):
        assert lifecycle.can_transition(DocumentStatus.draft, DocumentStatus.issued)
        assert lifecycle.can_transition(
            DocumentStatus.issued, DocumentStatus.superseded
        )

    def test_forbidden_transitions(self):
        assert not lifecycle.can_transition(
            DocumentStatus.draft, DocumentStatus.superseded
        )
        assert not lifecycle.can_transition(DocumentStatus.issued, DocumentStatus.draft)
        for target in DocumentStatus:
            assert not lifecycle.can_transition(DocumentStatus.superseded, target)

    def test_transition_raises(self, make_draft):
        draft = make_draft()
        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(draft, DocumentStatus.superseded)
        assert draft.status == DocumentStatus.draft


class TestEditability:
    def test_draft_is_editable(self, make_draft):
        draft = make_draft()
        assert lifecycle.is_editable(draft) is True
        assert lifecycle.lock_reason(draft) is None

    def test_issued_is_locked(self, issued_document):
        assert lifecycle.is_editable(issued_document) is False
        assert "issued" in lifecycle.lock_reason(issued_document)

    def test_assert_editable_on_issued(self, db_session, ctx, issued_document):
        with pytest.raises(LockedDocumentError) as exc:
            lifecycle.assert_editable(db_session, ctx, issued_document.id)
        assert exc.value.status_code == 403
        assert exc.value.details["status"] == "issued"

    def test_assert_editable_other_organisation(
        self, db_session, other_ctx, make_draft
    ):
        draft = make_draft()
        with pytest.raises(HTTPException) as exc:
            lifecycle.assert_editable(db_session, other_ctx, draft.id)
        assert exc.value.status_code == 404

    def test_load_document_not_found(self, db_session, ctx):
        with pytest.raises(HTTPException) as exc:
            lifecycle.load_document(db_session, ctx, uuid.uuid4())
        assert exc.value.status_code == 404


class TestFamilyQueries:
    def test_latest_issued_and_next_version(self, db_session, ctx):
        family_id = uuid.uuid4()
        _issued_row(
            db_session, ctx, family_id, 1, status=DocumentStatus.superseded
        )
        v2 = _issued_row(db_session, ctx, family_id, 2)
        assert lifecycle.latest_issued(db_session, family_id).id == v2.id
        assert lifecycle.next_version_number(db_session, family_id) == 3

    def test_latest_issued_scoped_to_organisation(self, db_session, ctx, other_ctx):
        family_id = uuid.uuid4()
        _issued_row(db_session, ctx, family_id, 1)
        assert (
            lifecycle.latest_issued(db_session, family_id, other_ctx.organisation_id)
            is None
        )

    def test_next_version_for_empty_family(self, db_session):
        assert lifecycle.next_version_number(db_session, uuid.uuid4()) == 1

    def test_active_draft(self, db_session, make_draft):
        draft = make_draft()
        assert lifecycle.active_draft(db_session, draft.family_id).id == draft.id


class TestSupersede:
    def test_supersede_previous(self, db_session, ctx):
        family_id = uuid.uuid4()
        v1 = _issued_row(db_session, ctx, family_id, 1)
        v2 = _issued_row(db_session, ctx, family_id, 2)
        previous = lifecycle.supersede_previous(db_session, v2)
        db_session.commit()
        assert [p.id for p in previous] == [v1.id]
        assert v1.status == DocumentStatus.superseded
        assert v1.superseded_by_document_id == v2.id
        assert v1.superseded_at is not None
        assert v2.status == DocumentStatus.issued

    def test_supersede_ignores_later_versions(self, db_session, ctx):
        family_id = uuid.uuid4()
        v1 = _issued_row(db_session, ctx, family_id, 1)
        _issued_row(db_session, ctx, family_id, 2)
        assert lifecycle.supersede_previous(db_session, v1) == []


class TestFamilyHealth:
    def test_healthy_family(self, db_session, ctx, issued_document):
        health = lifecycle.family_health(db_session, ctx, issued_document.family_id)
        assert health["healthy"] is True
        assert health["issued_count"] == 1
        assert health["latest_issued_version_number"] == 1

    def test_two_issued_versions_reported(self, db_session, ctx):
        family_id = uuid.uuid4()
        _issued_row(db_session, ctx, family_id, 1)
        _issued_row(db_session, ctx, family_id, 2, locked_pdf_reference=None)
        health = lifecycle.family_health(db_session, ctx, family_id)
        assert health["healthy"] is False
        assert health["issued_without_locked_pdf"] == 1
        assert any("issued versions" in p for p in health["problems"])

    def test_unknown_family(self, db_session, ctx):
        with pytest.raises(HTTPException) as exc:
            lifecycle.family_health(db_session, ctx, uuid.uuid4())
        assert exc.value.status_code == 404


class TestReconcileFamily:
    def test_reconcile_supersedes_stale_issue(self, db_session, ctx):
        family_id = uuid.uuid4()
        v1 = _issued_row(db_session, ctx, family_id, 1)
        v2 = _issued_row(db_session, ctx, family_id, 2)
        report = lifecycle.reconcile_family(db_session, family_id)
        db_session.commit()
        assert report["superseded"] == 1
        assert v1.status == DocumentStatus.superseded
        assert v1.superseded_by_document_id == v2.id

    def test_reconcile_reports_missing_pdf(self, db_session, ctx):
        family_id = uuid.uuid4()
        v1 = _issued_row(db_session, ctx, family_id, 1, locked_pdf_reference=None)
        report = lifecycle.reconcile_family(db_session, family_id)
        assert report["missing_locked_pdf"] == [str(v1.id)]
        assert report["superseded"] == 0
