"""
Tests for the response envelope, error translation, pagination and the
asset endpoints that stream or list.
"""

import io
import zipfile

from assets_man.services.object_storage import StorageError

from conftest import register


def _upload(client, headers, name, size=10, folder_id=None, mime_type="text/plain"):
    response = client.post(
        "/api/assets/upload",
        json={"file_name": name, "mime_type": mime_type, "size": size, "folder_id": folder_id},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["asset"]


class TestEnvelope:
    def test_api_info(self, client):
        data = client.get("/").json()["data"]
        assert data["api_prefix"] == "/api"
        assert data["docs"] == "/docs"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"

    def test_unknown_route(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": {"code": "NOT_FOUND", "message": "Not Found"}}

    def test_validation_error_lists_fields(self, client, auth_headers):
        response = client.post("/api/folders/", json={"name": ""}, headers=auth_headers)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert list(error["details"]) == ["name"]

    def test_storage_failure_hides_vendor_detail(self, client, auth_headers, storage, monkeypatch):
        def broken(key, content_type, expires_in=3600):
            raise StorageError("AccessDenied: arn:aws:iam::123456789012")

        monkeypatch.setattr(storage, "get_presigned_upload_url", broken)

        response = client.post(
            "/api/assets/upload",
            json={"file_name": "a.txt", "mime_type": "text/plain", "size": 1},
            headers=auth_headers,
        )

        assert response.status_code == 500
        assert response.json()["error"] == {"code": "INTERNAL_ERROR", "message": "Failed to create upload"}
        assert "arn:aws" not in response.text

    def test_unhandled_exception_becomes_internal_error(self, app, client):
        def explode():
            raise RuntimeError("secret detail")

        app.add_api_route("/api/explode", explode)

        response = client.get("/api/explode")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}


class TestPagination:
    def test_pages_and_totals(self, client, auth_headers):
        for i in range(5):
            _upload(client, auth_headers, f"file-{i}.txt")

        body = client.get("/api/assets/?page=2&limit=2", headers=auth_headers).json()

        assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}
        assert len(body["data"]) == 2

    def test_limit_is_capped(self, client, auth_headers):
        response = client.get("/api/assets/?limit=101", headers=auth_headers)
        assert response.status_code == 400

    def test_search_is_case_insensitive(self, client, auth_headers):
        _upload(client, auth_headers, "Quarterly-Report.txt")
        _upload(client, auth_headers, "holiday.txt")

        body = client.get("/api/assets/search?q=report", headers=auth_headers).json()

        assert [item["name"] for item in body["data"]] == ["Quarterly-Report.txt"]


class TestAssetEndpoints:
    def test_download_url(self, client, auth_headers):
        asset = _upload(client, auth_headers, "a.txt")

        data = client.get(f"/api/assets/{asset['id']}/download", headers=auth_headers).json()["data"]

        assert data["url"].endswith("?method=GET")
        assert data["expires_in"] == 3600

    def test_other_users_asset_is_not_found(self, client, auth_headers):
        asset = _upload(client, auth_headers, "private.txt")
        intruder = register(client)

        assert client.get(f"/api/assets/{asset['id']}", headers=intruder["headers"]).status_code == 404

    def test_copy_next_to_source(self, client, auth_headers, storage):
        asset = _upload(client, auth_headers, "a.txt", size=3)
        storage.put(asset["storage_key"], b"abc")

        response = client.post(f"/api/assets/{asset['id']}/copy", json={}, headers=auth_headers)

        assert response.status_code == 201
        clone = response.json()["data"]
        assert clone["name"] == "Copy of a.txt"
        assert storage.objects[clone["storage_key"]] == b"abc"
        assert client.get("/api/storage/stats", headers=auth_headers).json()["data"]["used_storage"] == 6

    def test_star_toggles(self, client, auth_headers):
        asset = _upload(client, auth_headers, "a.txt")

        assert client.post(f"/api/assets/{asset['id']}/star", headers=auth_headers).json()["data"]["is_starred"] is True
        starred = client.get("/api/assets/starred", headers=auth_headers).json()["data"]
        assert [item["id"] for item in starred] == [asset["id"]]
        assert client.post(f"/api/assets/{asset['id']}/star", headers=auth_headers).json()["data"]["is_starred"] is False


class TestBulkDownload:
    def test_zip_keeps_folder_structure(self, client, auth_headers, storage):
        folder = client.post("/api/folders/", json={"name": "docs"}, headers=auth_headers).json()["data"]
        sub = client.post("/api/folders/", json={"name": "sub", "parent_id": folder["id"]}, headers=auth_headers).json()["data"]
        inside = _upload(client, auth_headers, "inner.txt", folder_id=sub["id"])
        loose = _upload(client, auth_headers, "loose.txt")
        storage.put(inside["storage_key"], b"inner")
        storage.put(loose["storage_key"], b"loose")

        response = client.post(
            "/api/assets/bulk-download",
            json={"asset_ids": [loose["id"]], "folder_ids": [folder["id"]]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        bundle = zipfile.ZipFile(io.BytesIO(response.content))
        assert sorted(bundle.namelist()) == ["docs/sub/inner.txt", "loose.txt"]
        assert bundle.read("docs/sub/inner.txt") == b"inner"

    def test_duplicate_names_are_disambiguated(self, client, auth_headers, storage):
        first = _upload(client, auth_headers, "same.txt")
        second = _upload(client, auth_headers, "same.txt")
        storage.put(first["storage_key"], b"1")
        storage.put(second["storage_key"], b"2")

        response = client.post("/api/assets/bulk-download", json={"asset_ids": [first["id"], second["id"]]}, headers=auth_headers)

        names = zipfile.ZipFile(io.BytesIO(response.content)).namelist()
        assert len(set(names)) == 2

    def test_missing_object_is_skipped(self, client, auth_headers, storage):
        present = _upload(client, auth_headers, "present.txt")
        absent = _upload(client, auth_headers, "absent.txt")
        storage.put(present["storage_key"], b"here")

        response = client.post(
            "/api/assets/bulk-download",
            json={"asset_ids": [present["id"], absent["id"]]},
            headers=auth_headers,
        )

        assert zipfile.ZipFile(io.BytesIO(response.content)).namelist() == ["present.txt"]

    def test_empty_selection(self, client, auth_headers):
        response = client.post("/api/assets/bulk-download", json={}, headers=auth_headers)
        assert response.status_code == 400

    def test_nothing_found(self, client, auth_headers):
        response = client.post("/api/assets/bulk-download", json={"asset_ids": ["missing"]}, headers=auth_headers)
        assert response.status_code == 404
