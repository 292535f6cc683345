"""
Tests for trash: cascading trash and restore, the top-level listing,
permanent deletion and emptying.
"""

import pytest

from conftest import register


def _folder(client, headers, name, parent_id=None):
    response = client.post("/api/folders/", json={"name": name, "parent_id": parent_id}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _upload(client, headers, storage, name, size=100, folder_id=None):
    response = client.post(
        "/api/assets/upload",
        json={"file_name": name, "mime_type": "text/plain", "size": size, "folder_id": folder_id},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    asset = response.json()["data"]["asset"]
    storage.put(asset["storage_key"], b"x" * size)
    return asset


@pytest.fixture
def tree(client, auth_headers, storage):
    """docs > reports, with one file in each."""
    docs = _folder(client, auth_headers, "docs")
    reports = _folder(client, auth_headers, "reports", docs["id"])
    notes = _upload(client, auth_headers, storage, "notes.txt", 100, docs["id"])
    summary = _upload(client, auth_headers, storage, "summary.txt", 200, reports["id"])
    return {"docs": docs, "reports": reports, "notes": notes, "summary": summary}


def _trash(client, headers):
    return client.get("/api/trash/", headers=headers).json()


class TestTrashFolder:
    def test_subtree_is_trashed_but_only_root_is_listed(self, client, auth_headers, tree):
        assert client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers).status_code == 200

        body = _trash(client, auth_headers)
        assert [(item["id"], item["item_type"]) for item in body["data"]] == [(tree["docs"]["id"], "folder")]
        assert body["pagination"]["total"] == 1

        assert client.get(f"/api/folders/{tree['reports']['id']}", headers=auth_headers).status_code == 404
        assert client.get(f"/api/assets/{tree['summary']['id']}", headers=auth_headers).status_code == 404

    def test_restore_brings_back_the_whole_subtree(self, client, auth_headers, tree):
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        response = client.post(f"/api/trash/{tree['docs']['id']}/restore?type=folder", headers=auth_headers)

        assert response.status_code == 200
        assert client.get(f"/api/folders/{tree['reports']['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/assets/{tree['summary']['id']}", headers=auth_headers).status_code == 200
        assert _trash(client, auth_headers)["data"] == []

    def test_separately_trashed_asset_stays_in_trash(self, client, auth_headers, tree):
        client.delete(f"/api/assets/{tree['notes']['id']}", headers=auth_headers)
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        client.post(f"/api/trash/{tree['docs']['id']}/restore?type=folder", headers=auth_headers)

        assert client.get(f"/api/assets/{tree['notes']['id']}", headers=auth_headers).status_code == 404
        listed = _trash(client, auth_headers)["data"]
        assert [(item["id"], item["item_type"]) for item in listed] == [(tree["notes"]["id"], "asset")]


class TestRestore:
    def test_asset_whose_folder_is_trashed_is_restored_to_root(self, client, auth_headers, tree):
        client.delete(f"/api/folders/{tree['reports']['id']}", headers=auth_headers)

        response = client.post(f"/api/trash/{tree['summary']['id']}/restore?type=asset", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["folder_id"] is None

    def test_folder_whose_parent_is_trashed_is_restored_to_root(self, client, auth_headers, tree):
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        response = client.post(f"/api/folders/{tree['reports']['id']}/restore", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["parent_id"] is None

    def test_restoring_an_active_item_is_not_found(self, client, auth_headers, tree):
        response = client.post(f"/api/trash/{tree['notes']['id']}/restore?type=asset", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Item not found in trash"

    def test_type_is_required(self, client, auth_headers, tree):
        response = client.post(f"/api/trash/{tree['notes']['id']}/restore", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestPermanentDelete:
    def test_folder_delete_frees_quota_and_objects(self, client, auth_headers, storage, tree):
        assert client.get("/api/storage/stats", headers=auth_headers).json()["data"]["used_storage"] == 300
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        response = client.delete(f"/api/trash/{tree['docs']['id']}?type=folder", headers=auth_headers)

        assert response.status_code == 200
        assert tree["notes"]["storage_key"] not in storage.objects
        assert tree["summary"]["storage_key"] not in storage.objects
        assert client.get("/api/storage/stats", headers=auth_headers).json()["data"]["used_storage"] == 0
        assert _trash(client, auth_headers)["data"] == []

    def test_active_asset_cannot_be_purged(self, client, auth_headers, storage, tree):
        response = client.delete(f"/api/assets/{tree['notes']['id']}/permanent", headers=auth_headers)
        assert response.status_code == 404
        assert tree["notes"]["storage_key"] in storage.objects

    def test_permanent_folder_delete_reports_counts(self, client, auth_headers, tree):
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        response = client.delete(f"/api/folders/{tree['docs']['id']}/permanent", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_folders": 2, "deleted_assets": 2}


class TestEmptyTrash:
    def test_counts_everything_removed(self, client, auth_headers, storage, tree):
        loose = _upload(client, auth_headers, storage, "loose.txt", 50)
        client.delete(f"/api/assets/{loose['id']}", headers=auth_headers)
        client.delete(f"/api/folders/{tree['docs']['id']}", headers=auth_headers)

        response = client.delete("/api/trash/", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_assets": 3, "deleted_folders": 2, "total": 5}
        assert storage.objects == {}
        assert client.get("/api/storage/stats", headers=auth_headers).json()["data"]["used_storage"] == 0

    def test_other_users_trash_is_untouched(self, client, auth_headers, storage, tree):
        other = register(client)
        theirs = _upload(client, other["headers"], storage, "theirs.txt")
        client.delete(f"/api/assets/{theirs['id']}", headers=other["headers"])

        client.delete("/api/trash/", headers=auth_headers)

        assert [item["id"] for item in _trash(client, other["headers"])["data"]] == [theirs["id"]]
