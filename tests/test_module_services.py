import pytest
from fastapi import HTTPException

from app.errors import LockedDocumentError
from app.schemas.lifecycle import ModuleComplete, ModuleUpsert
from app.services.module_catalog import (
    get_module_name,
    modules_for_kinds,
    required_modules_for_kinds,
)
from app.models.lifecycle import ModuleKind
from app.services.modules import Modules


class TestModuleCatalog:
    def test_required_modules_for_fra(self):
        assert required_modules_for_kinds({ModuleKind.fra}) == [
            "A1_DOC_CONTROL",
            "FRA_4_SIGNIFICANT_FINDINGS",
        ]

    def test_combined_kinds_merge(self):
        keys = modules_for_kinds({ModuleKind.fra, ModuleKind.fsd})
        assert "FRA_1_HAZARDS" in keys
        assert "FSD_1_REG_BASIS" in keys
        assert keys.count("A1_DOC_CONTROL") == 1

    def test_unknown_key_name_falls_back(self):
        assert get_module_name("CUSTOM_X") == "CUSTOM_X"


class TestModulesUpsert:
    def test_upsert_creates_then_updates(self, db_session, ctx, make_draft):
        draft = make_draft()
        first = Modules.upsert(
            db_session,
            ctx,
            str(draft.id),
            "FRA_1_HAZARDS",
            ModuleUpsert(payload={"ignition": ["heaters"]}),
        )
        second = Modules.upsert(
            db_session,
            ctx,
            str(draft.id),
            "FRA_1_HAZARDS",
            ModuleUpsert(payload={"ignition": []}, outcome="compliant"),
        )
        assert first.id == second.id
        assert second.payload == {"ignition": []}
        assert second.outcome == "compliant"

    def test_upsert_unknown_module(self, db_session, ctx, make_draft):
        draft = make_draft()
        with pytest.raises(HTTPException) as exc:
            Modules.upsert(
                db_session, ctx, str(draft.id), "NOPE", ModuleUpsert(payload={})
            )
        assert exc.value.status_code == 400

    def test_upsert_module_for_other_kind(self, db_session, ctx, make_draft):
        draft = make_draft()
        with pytest.raises(HTTPException) as exc:
            Modules.upsert(
                db_session,
                ctx,
                str(draft.id),
                "RE_02_CONSTRUCTION",
                ModuleUpsert(payload={"walls": "brick"}),
            )
        assert exc.value.status_code == 400

    def test_upsert_on_issued_document(self, db_session, ctx, issued_document):
        with pytest.raises(LockedDocumentError):
            Modules.upsert(
                db_session,
                ctx,
                str(issued_document.id),
                "A1_DOC_CONTROL",
                ModuleUpsert(payload={"changed": True}),
            )


class TestModulesComplete:
    def test_complete_sets_timestamp(self, db_session, ctx, make_draft):
        draft = make_draft()
        Modules.upsert(
            db_session, ctx, str(draft.id), "A1_DOC_CONTROL", ModuleUpsert(payload={"a": 1})
        )
        module = Modules.complete(
            db_session,
            ctx,
            str(draft.id),
            "A1_DOC_CONTROL",
            ModuleComplete(outcome="minor_def"),
        )
        assert module.completed_at is not None
        assert module.outcome == "minor_def"

    def test_complete_missing_module(self, db_session, ctx, make_draft):
        draft = make_draft()
        with pytest.raises(HTTPException) as exc:
            Modules.complete(
                db_session, ctx, str(draft.id), "A1_DOC_CONTROL", ModuleComplete()
            )
        assert exc.value.status_code == 404


class TestModulesRead:
    def test_list_in_catalog_order(self, db_session, ctx, ready_draft):
        keys = [m.module_key for m in Modules.list(db_session, ctx, str(ready_draft.id))]
        assert keys == ["A1_DOC_CONTROL", "FRA_4_SIGNIFICANT_FINDINGS"]

    def test_get_not_found(self, db_session, ctx, ready_draft):
        with pytest.raises(HTTPException) as exc:
            Modules.get(db_session, ctx, str(ready_draft.id), "FRA_1_HAZARDS")
        assert exc.value.status_code == 404
