import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.errors import (
    BaselineSnapshotMissing,
    DraftAlreadyExistsError,
    NoIssuedBaselineError,
)
from app.models.lifecycle import (
    ActionItem,
    Document,
    DocumentStatus,
    EvidenceReference,
    ModuleInstance,
    RevisionSnapshot,
    SnapshotStatus,
)
from app.schemas.evidence import EvidenceCreate
from app.services.documents import documents
from app.services.evidence import Evidence
from app.services.forking import fork_new_version
from app.services.snapshots import Snapshots


def _actions(db_session, document):
    return db_session.scalars(
        select(ActionItem)
        .where(ActionItem.document_id == document.id)
        .order_by(ActionItem.created_at.asc())
    ).all()


def _attach(db_session, ctx, document, action=None, name="photo.jpg"):
    return Evidence.create(
        db_session,
        ctx,
        str(document.id),
        EvidenceCreate(
            storage_path=f"{document.organisation_id}/{document.family_id}/evidence/x/{name}",
            file_name=name,
            mime_type="image/jpeg",
            action_id=action.id if action else None,
        ),
    )


@pytest.fixture()
def issued_with_actions(ready_draft, add_action, issue_document):
    add_action(ready_draft, text="Replace fire door", priority="P1")
    add_action(ready_draft, text="Clear escape route", status="in_progress")
    add_action(ready_draft, text="Fix signage", status="closed")
    add_action(ready_draft, text="Roof survey", status="not_applicable")
    return issue_document(ready_draft)


class TestForkPreconditions:
    def test_family_without_issue(self, db_session, ctx, make_draft):
        draft = make_draft()
        with pytest.raises(NoIssuedBaselineError) as exc:
            fork_new_version(db_session, ctx, draft.family_id)
        assert exc.value.status_code == 409

    def test_unknown_family(self, db_session, ctx):
        with pytest.raises(NoIssuedBaselineError):
            fork_new_version(db_session, ctx, uuid.uuid4())

    def test_other_organisation(self, db_session, other_ctx, issued_document):
        with pytest.raises(NoIssuedBaselineError):
            fork_new_version(db_session, other_ctx, issued_document.family_id)

    def test_second_fork_rejected(self, db_session, ctx, issued_document):
        first = fork_new_version(db_session, ctx, issued_document.family_id)
        with pytest.raises(DraftAlreadyExistsError) as exc:
            fork_new_version(db_session, ctx, issued_document.family_id)
        assert exc.value.details["draft_document_id"] == str(first.document.id)


class TestForkCarryForward:
    def test_fork_creates_next_draft(self, db_session, ctx, issued_with_actions):
        result = fork_new_version(db_session, ctx, issued_with_actions.family_id)
        draft = result.document
        assert draft.status == DocumentStatus.draft
        assert draft.version_number == 2
        assert draft.family_id == issued_with_actions.family_id
        assert draft.id != issued_with_actions.id
        assert draft.title == issued_with_actions.title
        assert draft.locked_pdf_reference is None
        assert draft.issued_at is None
        assert result.warnings == []

    def test_only_unresolved_actions_carry(self, db_session, ctx, issued_with_actions):
        baseline_actions = {a.recommended_action: a for a in _actions(db_session, issued_with_actions)}
        result = fork_new_version(db_session, ctx, issued_with_actions.family_id)
        carried = _actions(db_session, result.document)

        assert result.carried_actions == 2
        assert sorted(a.recommended_action for a in carried) == [
            "Clear escape route",
            "Replace fire door",
        ]
        for action in carried:
            original = baseline_actions[action.recommended_action]
            assert action.id != original.id
            assert action.origin_action_id == original.id
            assert action.source_document_id == issued_with_actions.id
            assert action.carried_from_document_id == issued_with_actions.id
            assert action.status == original.status
            assert action.priority == original.priority

    def test_lineage_root_survives_second_fork(
        self, db_session, ctx, issued_with_actions, issue_document
    ):
        root = next(
            a
            for a in _actions(db_session, issued_with_actions)
            if a.recommended_action == "Replace fire door"
        )
        v2 = fork_new_version(db_session, ctx, issued_with_actions.family_id).document
        issue_document(v2)
        v3 = fork_new_version(db_session, ctx, issued_with_actions.family_id).document

        carried = next(
            a for a in _actions(db_session, v3) if a.recommended_action == "Replace fire door"
        )
        assert v3.version_number == 3
        assert carried.origin_action_id == root.id
        assert carried.source_document_id == issued_with_actions.id
        assert carried.carried_from_document_id == v2.id

    def test_zero_open_actions(self, db_session, ctx, issued_document):
        result = fork_new_version(db_session, ctx, issued_document.family_id)
        assert result.carried_actions == 0
        assert _actions(db_session, result.document) == []

    def test_modules_copied_verbatim(self, db_session, ctx, issued_document):
        result = fork_new_version(db_session, ctx, issued_document.family_id)
        modules = db_session.scalars(
            select(ModuleInstance).where(
                ModuleInstance.document_id == result.document.id
            )
        ).all()
        by_key = {m.module_key: m for m in modules}
        assert set(by_key) == {"A1_DOC_CONTROL", "FRA_4_SIGNIFICANT_FINDINGS"}
        assert by_key["A1_DOC_CONTROL"].payload == {
            "reviewed": True,
            "notes": "A1_DOC_CONTROL notes",
        }
        assert by_key["A1_DOC_CONTROL"].completed_at is not None

    def test_baseline_untouched(self, db_session, ctx, issued_with_actions):
        before = [(a.id, a.status) for a in _actions(db_session, issued_with_actions)]
        fork_new_version(db_session, ctx, issued_with_actions.family_id)
        db_session.refresh(issued_with_actions)
        assert issued_with_actions.status == DocumentStatus.issued
        assert [(a.id, a.status) for a in _actions(db_session, issued_with_actions)] == before

    def test_draft_snapshot_recorded(self, db_session, ctx, issued_document):
        result = fork_new_version(db_session, ctx, issued_document.family_id)
        snapshot = db_session.scalars(
            select(RevisionSnapshot).where(
                RevisionSnapshot.document_id == result.document.id
            )
        ).one()
        assert snapshot.status == SnapshotStatus.draft
        assert snapshot.revision_number == 2


class TestForkEvidence:
    def test_evidence_references_duplicated(
        self, db_session, ctx, ready_draft, add_action, issue_document
    ):
        open_action = add_action(ready_draft, text="Open item")
        closed_action = add_action(ready_draft, text="Done item", status="closed")
        _attach(db_session, ctx, ready_draft, name="general.jpg")
        _attach(db_session, ctx, ready_draft, open_action, name="open.jpg")
        _attach(db_session, ctx, ready_draft, closed_action, name="closed.jpg")
        baseline = issue_document(ready_draft)

        result = fork_new_version(db_session, ctx, baseline.family_id)
        carried = db_session.scalars(
            select(EvidenceReference).where(
                EvidenceReference.document_id == result.document.id
            )
        ).all()
        names = sorted(e.file_name for e in carried)
        assert result.carried_evidence == 2
        assert names == ["general.jpg", "open.jpg"]

        new_open = next(
            a for a in _actions(db_session, result.document) if a.recommended_action == "Open item"
        )
        linked = next(e for e in carried if e.file_name == "open.jpg")
        assert linked.action_id == new_open.id
        assert linked.storage_path.endswith("/open.jpg")
        assert linked.carried_from_document_id == baseline.id

    def test_evidence_carry_disabled(self, db_session, ctx, ready_draft, issue_document):
        _attach(db_session, ctx, ready_draft)
        baseline = issue_document(ready_draft)
        result = fork_new_version(
            db_session, ctx, baseline.family_id, carry_forward_evidence=False
        )
        assert result.carried_evidence == 0

    def test_evidence_failure_is_a_warning(
        self, db_session, ctx, ready_draft, add_action, issue_document
    ):
        add_action(ready_draft)
        _attach(db_session, ctx, ready_draft)
        baseline = issue_document(ready_draft)

        with patch(
            "app.services.forking._carry_forward_evidence",
            side_effect=OperationalError("INSERT", {}, Exception("disk full")),
        ):
            result = fork_new_version(db_session, ctx, baseline.family_id)

        assert result.carried_evidence == 0
        assert "Evidence could not be carried forward" in result.warnings
        assert result.carried_actions == 1
        assert result.document.status == DocumentStatus.draft
        assert len(_actions(db_session, result.document)) == 1


class TestForkBaselineIntegrity:
    def test_missing_snapshot_is_hard_error(self, db_session, ctx, issued_document):
        # Simulate a baseline issued by a path that never wrote a snapshot.
        db_session.execute(
            RevisionSnapshot.__table__.delete().where(
                RevisionSnapshot.family_id == issued_document.family_id
            )
        )
        db_session.commit()
        with pytest.raises(BaselineSnapshotMissing):
            fork_new_version(db_session, ctx, issued_document.family_id)
        drafts = db_session.scalars(
            select(Document).where(
                Document.family_id == issued_document.family_id,
                Document.status == DocumentStatus.draft,
            )
        ).all()
        assert drafts == []

    def test_tampered_snapshot_is_hard_error(self, db_session, ctx, issued_document):
        db_session.execute(
            RevisionSnapshot.__table__.update()
            .where(RevisionSnapshot.family_id == issued_document.family_id)
            .values(payload_sha256="0" * 64)
        )
        db_session.commit()
        with pytest.raises(BaselineSnapshotMissing):
            fork_new_version(db_session, ctx, issued_document.family_id)


class TestForkVersionAllocation:
    def test_refork_after_discard_reuses_version(self, db_session, ctx, issued_document):
        first = fork_new_version(db_session, ctx, issued_document.family_id).document
        assert first.version_number == 2
        documents.discard(db_session, ctx, str(first.id))

        result = fork_new_version(db_session, ctx, issued_document.family_id)
        assert result.document.version_number == issued_document.version_number + 1
        assert result.document.id != first.id
        assert result.warnings == []

        live_drafts = db_session.scalars(
            select(Document).where(
                Document.family_id == issued_document.family_id,
                Document.status == DocumentStatus.draft,
                Document.deleted_at.is_(None),
            )
        ).all()
        assert [d.id for d in live_drafts] == [result.document.id]
        snapshot = Snapshots.find(
            db_session, issued_document.family_id, 2, SnapshotStatus.draft
        )
        assert snapshot.document_id == result.document.id

    def test_version_follows_baseline(self, db_session, ctx, issued_document, issue_document):
        v2 = fork_new_version(db_session, ctx, issued_document.family_id).document
        issue_document(v2)
        v3 = fork_new_version(db_session, ctx, issued_document.family_id).document
        assert v3.version_number == v2.version_number + 1


class TestForkConcurrency:
    def test_racing_fork_rejected_by_index(self, db_session, ctx, issued_document):
        first = fork_new_version(db_session, ctx, issued_document.family_id).document

        # The second caller read "no draft" before the first committed.
        with patch("app.services.lifecycle.active_draft", return_value=None):
            with pytest.raises(DraftAlreadyExistsError) as exc:
                fork_new_version(db_session, ctx, issued_document.family_id)
        assert exc.value.status_code == 409

        drafts = db_session.scalars(
            select(Document).where(
                Document.family_id == issued_document.family_id,
                Document.status == DocumentStatus.draft,
            )
        ).all()
        assert [d.id for d in drafts] == [first.id]


class TestForkAtomicity:
    def test_primary_failure_leaves_nothing_behind(
        self, db_session, ctx, issued_with_actions
    ):
        family_id = issued_with_actions.family_id
        baseline_id = issued_with_actions.id
        modules_before = db_session.scalars(select(ModuleInstance.id)).all()
        actions_before = db_session.scalars(select(ActionItem.id)).all()

        with patch(
            "app.services.forking._carry_forward_actions",
            side_effect=OperationalError("INSERT", {}, Exception("connection lost")),
        ):
            with pytest.raises(OperationalError):
                fork_new_version(db_session, ctx, family_id)

        family = db_session.scalars(
            select(Document.id).where(Document.family_id == family_id)
        ).all()
        assert family == [baseline_id]
        assert sorted(db_session.scalars(select(ModuleInstance.id)).all()) == sorted(
            modules_before
        )
        assert sorted(db_session.scalars(select(ActionItem.id)).all()) == sorted(
            actions_before
        )
        assert (
            db_session.scalars(
                select(RevisionSnapshot).where(
                    RevisionSnapshot.family_id == family_id,
                    RevisionSnapshot.status == SnapshotStatus.draft,
                )
            ).all()
            == []
        )
