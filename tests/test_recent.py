"""
Tests for recent activity: upsert on access, pruning, and listing only
items that are still active.
"""

from datetime import datetime, timedelta

import pytest

from assets_man.core.errors import ServiceError
from assets_man.models import Folder, RecentActivity
from assets_man.services.recent import MAX_RECENT_ITEMS, RecentService

from conftest import make_asset, make_folder


@pytest.fixture
def service(db_session):
    return RecentService(db_session)


class TestRecordAccess:
    def test_repeat_access_updates_the_same_row(self, service, db_session, user):
        asset = make_asset(db_session, user.id)

        first = service.record_access(user.id, asset.id, "asset")
        first_seen = first.accessed_at
        second = service.record_access(user.id, asset.id, "asset")

        assert second.id == first.id
        assert second.accessed_at >= first_seen
        assert db_session.query(RecentActivity).count() == 1

    def test_unknown_item(self, service, user):
        with pytest.raises(ServiceError) as exc:
            service.record_access(user.id, "missing", "folder")
        assert exc.value.token == "FOLDER_NOT_FOUND"

    def test_trashed_item_is_not_recorded(self, service, db_session, user):
        asset = make_asset(db_session, user.id)
        asset.move_to_trash()
        db_session.commit()

        with pytest.raises(ServiceError) as exc:
            service.record_access(user.id, asset.id, "asset")
        assert exc.value.token == "ASSET_NOT_FOUND"


class TestPrune:
    def test_keeps_only_the_newest_entries(self, db_session, user):
        service = RecentService(db_session, max_items=3)
        folders = [make_folder(db_session, user.id, f"f{i}") for i in range(5)]

        for folder in folders:
            service.record_access(user.id, folder.id, "folder")

        kept = {entry.folder_id for entry in db_session.query(RecentActivity).all()}
        assert kept == {folder.id for folder in folders[2:]}

    def test_default_cap_is_one_hundred(self, service, db_session, user):
        assert MAX_RECENT_ITEMS == 100
        start = datetime.utcnow() - timedelta(days=1)
        folders = [Folder(name=f"f{i}", owner_id=user.id) for i in range(105)]
        db_session.add_all(folders)
        db_session.flush()
        db_session.add_all(
            RecentActivity(user_id=user.id, folder_id=folder.id, item_type="folder", accessed_at=start + timedelta(minutes=i))
            for i, folder in enumerate(folders)
        )
        db_session.commit()

        assert service.prune(user.id) == 5
        oldest = db_session.query(RecentActivity).order_by(RecentActivity.accessed_at.asc()).first()
        assert oldest.folder_id == folders[5].id


class TestListRecent:
    def test_newest_first_and_trashed_hidden(self, service, db_session, user):
        folder = make_folder(db_session, user.id, "docs")
        kept = make_asset(db_session, user.id, name="kept.png")
        hidden = make_asset(db_session, user.id, name="hidden.png")
        service.record_access(user.id, folder.id, "folder")
        service.record_access(user.id, kept.id, "asset")
        service.record_access(user.id, hidden.id, "asset")
        hidden.move_to_trash()
        db_session.commit()

        items, total = service.list_recent(user.id, 0, 20)

        assert total == 2
        assert [(item.item_type, item.asset_id or item.folder_id) for item in items] == [("asset", kept.id), ("folder", folder.id)]


class TestRecentRoutes:
    def _folder(self, client, headers, name="docs"):
        return client.post("/api/folders/", json={"name": name}, headers=headers).json()["data"]

    def test_record_and_list(self, client, auth_headers):
        folder = self._folder(client, auth_headers)

        recorded = client.post("/api/recent/", json={"item_id": folder["id"], "item_type": "folder"}, headers=auth_headers)
        assert recorded.status_code == 201

        body = client.get("/api/recent/", headers=auth_headers).json()
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "total_pages": 1}
        assert body["data"][0]["folder"]["name"] == "docs"
        assert body["data"][0]["asset"] is None

    def test_limit_is_capped_at_fifty(self, client, auth_headers):
        assert client.get("/api/recent/?limit=50", headers=auth_headers).status_code == 200
        assert client.get("/api/recent/?limit=51", headers=auth_headers).status_code == 400

    def test_remove_and_clear(self, client, auth_headers):
        first = self._folder(client, auth_headers, "a")
        second = self._folder(client, auth_headers, "b")
        for folder in (first, second):
            client.post("/api/recent/", json={"item_id": folder["id"], "item_type": "folder"}, headers=auth_headers)

        assert client.delete(f"/api/recent/{first['id']}?type=folder", headers=auth_headers).status_code == 200
        missing = client.delete(f"/api/recent/{first['id']}?type=folder", headers=auth_headers)
        assert missing.status_code == 404
        assert missing.json()["error"]["message"] == "Item not found in recent activity"

        cleared = client.delete("/api/recent/", headers=auth_headers)
        assert cleared.json()["data"] == {"deleted": 1}
        assert client.get("/api/recent/", headers=auth_headers).json()["data"] == []
