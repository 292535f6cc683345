"""
Tests for the thumbnail pipeline: classification, the three renderers,
idempotency and batch chunking.
"""

import io
import os
import threading
import time

import pytest
from PIL import Image

from assets_man.models import Asset
from assets_man.services.object_storage import generate_thumbnail_key
from assets_man.services.thumbnails import (
    RenderError,
    ThumbnailPipeline,
    ThumbnailResult,
    chunked,
    classify,
)

from conftest import make_asset


def _png(color="red", size=(640, 480)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _two_page_pdf() -> bytes:
    buf = io.BytesIO()
    first = Image.new("RGB", (200, 300), (255, 0, 0))
    second = Image.new("RGB", (200, 300), (0, 0, 255))
    first.save(buf, format="PDF", save_all=True, append_images=[second])
    return buf.getvalue()


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
def pipeline(database, storage):
    return ThumbnailPipeline(database.session_factory, storage)


class TestClassify:
    @pytest.mark.parametrize(
        "mime, kind",
        [
            ("image/jpeg", "image"),
            ("IMAGE/PNG", "image"),
            ("image/heic", None),
            ("video/mp4", "video"),
            ("video/x-matroska", "video"),
            ("application/pdf", "pdf"),
            ("text/plain", None),
            ("application/zip", None),
            (None, None),
        ],
    )
    def test_classifies_supported_types(self, mime, kind):
        assert classify(mime) == kind

    def test_chunks_of_five(self):
        ids = [str(i) for i in range(12)]
        assert [len(chunk) for chunk in chunked(ids)] == [5, 5, 2]
        assert [item for chunk in chunked(ids) for item in chunk] == ids


class TestGenerateThumbnail:
    def test_image_becomes_300_square_webp(self, pipeline, storage, db_session, user):
        asset = make_asset(db_session, user.id, storage=storage, data=_png(size=(1200, 400)))

        result = pipeline.generate_thumbnail(asset.id)

        assert result.success is True
        assert result.thumbnail_key == generate_thumbnail_key(asset.storage_key)
        assert storage.content_types[result.thumbnail_key] == "image/webp"
        thumb = _open(storage.objects[result.thumbnail_key])
        assert thumb.format == "WEBP"
        assert thumb.size == (300, 300)
        db_session.expire_all()
        assert db_session.get(Asset, asset.id).thumbnail_key == result.thumbnail_key

    def test_second_call_does_not_render_again(self, pipeline, storage, db_session, user):
        asset = make_asset(db_session, user.id, storage=storage, data=_png())

        first = pipeline.generate_thumbnail(asset.id)
        second = pipeline.generate_thumbnail(asset.id)

        assert second == ThumbnailResult(success=True, thumbnail_key=first.thumbnail_key)
        assert len(storage.uploads) == 1
        assert storage.reads == [asset.storage_key]

    def test_unsupported_type_is_not_rendered(self, pipeline, storage, db_session, user):
        asset = make_asset(db_session, user.id, name="notes.txt", mime_type="text/plain", storage=storage)

        result = pipeline.generate_thumbnail(asset.id)

        assert result == ThumbnailResult(success=False, error="Unsupported file type: text/plain")
        assert storage.reads == []
        assert storage.uploads == []

    def test_missing_asset(self, pipeline):
        assert pipeline.generate_thumbnail("missing").error == "Asset not found"

    def test_missing_source_object(self, pipeline, db_session, user):
        asset = make_asset(db_session, user.id)
        assert pipeline.generate_thumbnail(asset.id).error == "Source file not found in storage"

    def test_corrupt_image_reports_render_failure(self, pipeline, storage, db_session, user):
        asset = make_asset(db_session, user.id, storage=storage, data=b"not an image")

        result = pipeline.generate_thumbnail(asset.id)

        assert result.success is False
        assert result.error.startswith("Failed to generate thumbnail:")
        db_session.expire_all()
        assert db_session.get(Asset, asset.id).thumbnail_key is None

    def test_pdf_uses_first_page_only(self, pipeline, storage, db_session, user):
        asset = make_asset(db_session, user.id, name="doc.pdf", mime_type="application/pdf", storage=storage, data=_two_page_pdf())

        result = pipeline.generate_thumbnail(asset.id)

        assert result.success is True, result.error
        thumb = _open(storage.objects[result.thumbnail_key]).convert("RGB")
        assert thumb.size == (300, 300)
        red, green, blue = thumb.getpixel((150, 150))
        assert red > 200 and blue < 60


class TestVideoThumbnails:
    def _asset(self, db_session, storage, user):
        return make_asset(db_session, user.id, name="clip.mp4", mime_type="video/mp4", storage=storage, data=b"\x00" * 64)

    def test_retries_at_earlier_timestamp_and_cleans_up(self, database, storage, db_session, user):
        calls = []

        def extractor(source_path, output_path, timestamp):
            calls.append((timestamp, os.path.dirname(source_path)))
            assert os.path.exists(source_path)
            if timestamp >= 1.0:
                raise RenderError("no frame at 1.0s")
            with open(output_path, "wb") as handle:
                handle.write(_png("green"))

        pipeline = ThumbnailPipeline(database.session_factory, storage, frame_extractor=extractor)
        asset = self._asset(db_session, storage, user)

        result = pipeline.generate_thumbnail(asset.id)

        assert result.success is True, result.error
        assert [timestamp for timestamp, _ in calls] == [1.0, 0.1]
        assert not os.path.exists(calls[0][1])
        assert _open(storage.objects[result.thumbnail_key]).size == (300, 300)

    def test_both_attempts_failing_is_a_render_failure(self, database, storage, db_session, user):
        workdirs = []

        def extractor(source_path, output_path, timestamp):
            workdirs.append(os.path.dirname(source_path))
            raise RenderError(f"no frame at {timestamp}s")

        pipeline = ThumbnailPipeline(database.session_factory, storage, frame_extractor=extractor)
        asset = self._asset(db_session, storage, user)

        result = pipeline.generate_thumbnail(asset.id)

        assert result.success is False
        assert result.error.startswith("Failed to generate thumbnail:")
        assert len(workdirs) == 2
        assert not os.path.exists(workdirs[0])


class TestBatch:
    def test_runs_in_chunks_of_five_and_keeps_order(self, database, storage):
        active = 0
        peak = 0
        lock = threading.Lock()

        class RecordingPipeline(ThumbnailPipeline):
            def generate_thumbnail(self, asset_id):
                nonlocal active, peak
                with lock:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.02)
                with lock:
                    active -= 1
                return ThumbnailResult(success=True, thumbnail_key=f"thumb-{asset_id}")

        ids = [f"asset-{i}" for i in range(12)]
        results = RecordingPipeline(database.session_factory, storage).generate_batch(ids)

        assert [result.thumbnail_key for result in results] == [f"thumb-{i}" for i in ids]
        assert 1 <= peak <= 5

    def test_regenerate_missing_covers_supported_active_assets(self, pipeline, storage, db_session, user):
        make_asset(db_session, user.id, name="a.png", storage=storage, data=_png())
        make_asset(db_session, user.id, name="b.png", storage=storage, data=_png("blue"))
        make_asset(db_session, user.id, name="c.txt", mime_type="text/plain", storage=storage)
        make_asset(db_session, user.id, name="e.heic", mime_type="image/heic", storage=storage)
        trashed = make_asset(db_session, user.id, name="d.png", storage=storage, data=_png())
        trashed.move_to_trash()
        db_session.commit()

        summary = pipeline.regenerate_missing(user.id)

        assert summary == {"processed": 2, "succeeded": 2, "failed": 0}


class TestThumbnailRoutes:
    def test_generate_then_fetch_url(self, client, auth_headers, storage):
        created = client.post(
            "/api/assets/upload",
            json={"file_name": "pic.png", "mime_type": "image/png", "size": 10},
            headers=auth_headers,
        ).json()["data"]["asset"]
        assert client.get(f"/api/assets/{created['id']}/thumbnail", headers=auth_headers).status_code == 404

        storage.put(created["storage_key"], _png())
        response = client.post(f"/api/assets/{created['id']}/thumbnail", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["success"] is True

        url = client.get(f"/api/assets/{created['id']}/thumbnail", headers=auth_headers).json()["data"]["url"]
        assert "thumbnails/" in url

    def test_batch_reports_unknown_ids_per_item(self, client, auth_headers, storage):
        created = client.post(
            "/api/assets/upload",
            json={"file_name": "pic.png", "mime_type": "image/png", "size": 10},
            headers=auth_headers,
        ).json()["data"]["asset"]
        storage.put(created["storage_key"], _png())
        unknown = "00000000-0000-0000-0000-000000000000"

        response = client.post(
            "/api/assets/thumbnails/batch",
            json={"asset_ids": [unknown, created["id"]]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [(item["asset_id"], item["success"]) for item in data] == [(unknown, False), (created["id"], True)]
        assert data[0]["error"] == "Asset not found"

    def test_batch_does_not_touch_other_users_assets(self, client, auth_headers, storage, db_session, user):
        foreign = make_asset(db_session, user.id, name="theirs.png", storage=storage, data=_png())

        data = client.post(
            "/api/assets/thumbnails/batch", json={"asset_ids": [foreign.id]}, headers=auth_headers
        ).json()["data"]

        assert data == [{"asset_id": foreign.id, "success": False, "thumbnail_key": None, "error": "Asset not found"}]
        assert storage.uploads == []
