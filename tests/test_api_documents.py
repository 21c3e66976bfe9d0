import uuid


def _create(client, auth_headers, **overrides):
    body = {"title": "Office FRA", "document_type": "FRA"}
    body.update(overrides)
    resp = client.post("/documents", json=body, headers=auth_headers)
    assert resp.status_code == 201
    return resp.json()


class TestDocumentEndpoints:
    def test_create_document(self, client, auth_headers, ctx):
        data = _create(client, auth_headers)
        assert data["status"] == "draft"
        assert data["version_number"] == 1
        assert data["organisation_id"] == str(ctx.organisation_id)
        assert data["locked_pdf_reference"] is None

    def test_versioned_prefix(self, client, auth_headers):
        resp = client.post(
            "/api/v1/documents",
            json={"title": "DSEAR", "document_type": "DSEAR"},
            headers=auth_headers,
        )
        assert resp.status_code == 201

    def test_missing_identity_headers(self, client):
        resp = client.get("/documents")
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == "http_401"
        assert "X-Actor-Id" in body["message"]

    def test_invalid_identity_header(self, client, auth_headers):
        headers = dict(auth_headers, **{"X-Actor-Id": "not-a-uuid"})
        resp = client.get("/documents", headers=headers)
        assert resp.status_code == 401

    def test_validation_error_payload(self, client, auth_headers):
        resp = client.post(
            "/documents", json={"title": "", "document_type": "FRA"}, headers=auth_headers
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "validation_error"
        assert isinstance(body["details"], list)

    def test_get_document(self, client, auth_headers):
        created = _create(client, auth_headers)
        resp = client.get(f"/documents/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    def test_get_document_not_found(self, client, auth_headers):
        resp = client.get(f"/documents/{uuid.uuid4()}", headers=auth_headers)
        assert resp.status_code == 404
        assert set(resp.json()) == {"code", "message", "details"}

    def test_other_organisation_cannot_read(self, client, auth_headers, other_ctx):
        created = _create(client, auth_headers)
        headers = {
            "X-Actor-Id": str(other_ctx.actor_id),
            "X-Organisation-Id": str(other_ctx.organisation_id),
        }
        resp = client.get(f"/documents/{created['id']}", headers=headers)
        assert resp.status_code == 404

    def test_list_documents(self, client, auth_headers):
        _create(client, auth_headers)
        resp = client.get("/documents?status=draft", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["items"][0]["status"] == "draft"

    def test_update_draft(self, client, auth_headers):
        created = _create(client, auth_headers)
        resp = client.patch(
            f"/documents/{created['id']}",
            json={"title": "Renamed FRA"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Renamed FRA"

    def test_update_issued_document_locked(
        self, client, auth_headers, issued_document
    ):
        resp = client.patch(
            f"/documents/{issued_document.id}",
            json={"title": "Sneaky edit"},
            headers=auth_headers,
        )
        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "document_locked"
        assert "new version" in body["message"]

    def test_discard_draft(self, client, auth_headers):
        created = _create(client, auth_headers)
        resp = client.delete(f"/documents/{created['id']}", headers=auth_headers)
        assert resp.status_code == 204
        resp = client.get(f"/documents/{created['id']}", headers=auth_headers)
        assert resp.status_code == 404

    def test_lock_status(self, client, auth_headers, issued_document):
        resp = client.get(f"/documents/{issued_document.id}/lock", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "issued"
        assert body["editable"] is False


class TestFamilyEndpoints:
    def test_versions_and_health(self, client, auth_headers, issued_document):
        family_id = issued_document.family_id
        resp = client.get(f"/families/{family_id}/versions", headers=auth_headers)
        assert resp.status_code == 200
        assert [v["version_number"] for v in resp.json()] == [1]

        resp = client.get(f"/families/{family_id}/health", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["healthy"] is True


class TestModuleEndpoints:
    def test_save_and_complete_module(self, client, auth_headers):
        created = _create(client, auth_headers)
        url = f"/documents/{created['id']}/modules/A1_DOC_CONTROL"
        resp = client.put(
            url, json={"payload": {"responsible_person": "J. Smith"}}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json()["payload"] == {"responsible_person": "J. Smith"}

        resp = client.post(
            f"{url}/complete", json={"outcome": "compliant"}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json()["completed_at"] is not None

        resp = client.get(f"/documents/{created['id']}/modules", headers=auth_headers)
        assert [m["module_key"] for m in resp.json()] == ["A1_DOC_CONTROL"]

    def test_module_edit_on_issued_document(
        self, client, auth_headers, issued_document
    ):
        resp = client.put(
            f"/documents/{issued_document.id}/modules/A1_DOC_CONTROL",
            json={"payload": {"changed": True}},
            headers=auth_headers,
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "document_locked"
