import hashlib
import inspect

from app.api.deps import get_store
from app.main import app as fastapi_app


class TestIssueEndpoint:
    def test_issue_ready_draft(self, client, auth_headers, ready_draft, store):
        resp = client.post(f"/documents/{ready_draft.id}/issue", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["issued"] is True
        assert body["document"]["status"] == "issued"
        assert len(body["pdf_checksum"]) == 64
        assert body["document"]["locked_pdf_reference"] in store.objects

    def test_issue_blocked(self, client, auth_headers, make_draft):
        draft = make_draft()
        resp = client.post(f"/documents/{draft.id}/issue", headers=auth_headers)
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "issue_blocked"
        assert body["details"]

    def test_issue_twice(self, client, auth_headers, issued_document):
        resp = client.post(
            f"/documents/{issued_document.id}/issue", headers=auth_headers
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "not_draft"

    def test_upload_failure_returns_unlocked_pdf(
        self, client, auth_headers, ready_draft, failing_store
    ):
        fastapi_app.dependency_overrides[get_store] = lambda: failing_store
        resp = client.post(f"/documents/{ready_draft.id}/issue", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["x-issue-status"] == "not_issued"
        assert resp.headers["x-pdf-source"] == "unlocked"
        assert resp.content.startswith(b"%PDF")

        doc = client.get(f"/documents/{ready_draft.id}", headers=auth_headers).json()
        assert doc["status"] == "draft"

    def test_readiness(self, client, auth_headers, make_draft):
        draft = make_draft()
        resp = client.get(f"/documents/{draft.id}/readiness", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["ready"] is False
        assert body["blockers"]


class TestForkEndpoint:
    def test_fork_from_issued(self, client, auth_headers, issued_document):
        resp = client.post(
            f"/families/{issued_document.family_id}/fork", headers=auth_headers
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["document"]["version_number"] == 2
        assert body["document"]["status"] == "draft"
        assert body["document"]["locked_pdf_checksum"] is None

    def test_second_fork_conflicts(self, client, auth_headers, issued_document):
        url = f"/families/{issued_document.family_id}/fork"
        assert client.post(url, headers=auth_headers).status_code == 201
        resp = client.post(url, headers=auth_headers)
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "draft_already_exists"
        assert body["details"]["draft_document_id"]

    def test_fork_without_baseline(self, client, auth_headers, make_draft):
        draft = make_draft()
        resp = client.post(f"/families/{draft.family_id}/fork", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["code"] == "no_issued_baseline"


class TestPdfEndpoints:
    def test_download_locked_pdf(self, client, auth_headers, issued_document, store):
        stored = store.objects[issued_document.locked_pdf_reference]
        first = client.get(f"/documents/{issued_document.id}/pdf", headers=auth_headers)
        second = client.get(
            f"/documents/{issued_document.id}/pdf", headers=auth_headers
        )
        assert first.status_code == 200
        assert first.content == stored
        assert second.content == first.content
        assert first.headers["x-pdf-source"] == "locked"
        assert first.headers["x-pdf-sha256"] == hashlib.sha256(stored).hexdigest()

    def test_download_tampered_pdf(self, client, auth_headers, issued_document, store):
        store.objects[issued_document.locked_pdf_reference] = b"%PDF-1.4 forged"
        resp = client.get(f"/documents/{issued_document.id}/pdf", headers=auth_headers)
        assert resp.status_code == 500
        assert resp.json()["code"] == "pdf_integrity_mismatch"

    def test_verify(self, client, auth_headers, issued_document, store):
        stored = store.objects[issued_document.locked_pdf_reference]
        url = f"/documents/{issued_document.id}/pdf/verify"
        headers = dict(auth_headers, **{"Content-Type": "application/pdf"})
        resp = client.post(url, content=stored, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["valid"] is True

        resp = client.post(url, content=b"%PDF other", headers=headers)
        assert resp.json()["valid"] is False

    def test_verify_route_is_sync(self):
        from app.api.issuance import verify_pdf

        assert not inspect.iscoroutinefunction(verify_pdf)


class TestSnapshotEndpoints:
    def test_list_and_get(self, client, auth_headers, issued_document):
        family_id = issued_document.family_id
        resp = client.get(f"/families/{family_id}/snapshots", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["count"] == 1

        resp = client.get(f"/families/{family_id}/snapshots/1", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "issued"

        resp = client.get(
            f"/families/{family_id}/snapshots/1?status=draft", headers=auth_headers
        )
        assert resp.status_code == 404
