"""
Asset lifecycle: upload requests, listing, star/rename/move, trash, copy and
bulk ZIP download.

Uploads go straight from the client to the bucket through a presigned PUT, so
the row and the quota increment are recorded when the URL is handed out.
"""
from __future__ import annotations

import logging
import posixpath
import tempfile
import time
import zipfile
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO

from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from ..core.errors import ServiceError
from ..models.asset import Asset
from ..models.folder import Folder
from ..models.lifecycle import LifecycleState
from ..models.recent_activity import RecentActivity
from ..models.share import Share
from .folders import collect_subtree
from .object_storage import (
    DEFAULT_EXPIRES_IN,
    ObjectStorage,
    StorageError,
    generate_storage_key,
    generate_thumbnail_key,
)
from .quota import QuotaLedger

DOWNLOAD_CONCURRENCY = 5
_SPOOL_MAX_SIZE = 64 * 1024 * 1024


def _unique_path(path: str, used: set[str]) -> str:
    if path not in used:
        used.add(path)
        return path
    stem, ext = posixpath.splitext(path)
    counter = 1
    while f"{stem} ({counter}){ext}" in used:
        counter += 1
    unique = f"{stem} ({counter}){ext}"
    used.add(unique)
    return unique


class AssetService:
    def __init__(
        self,
        db: Session,
        storage: ObjectStorage,
        quota: QuotaLedger | None = None,
        logger: logging.Logger | None = None,
        url_expires_in: int = DEFAULT_EXPIRES_IN,
    ):
        self.db = db
        self.storage = storage
        self.quota = quota or QuotaLedger(db)
        self.logger = logger or logging.getLogger("assets_man.assets")
        self.url_expires_in = url_expires_in

    def _owned(self, user_id: str, asset_id: str, state: LifecycleState = LifecycleState.ACTIVE) -> Asset:
        asset = (
            self.db.query(Asset)
            .filter(Asset.id == asset_id, Asset.owner_id == user_id, Asset.state == state)
            .one_or_none()
        )
        if asset is None:
            raise ServiceError("ASSET_NOT_FOUND")
        return asset

    def _require_folder(self, user_id: str, folder_id: str) -> Folder:
        folder = (
            self.db.query(Folder)
            .filter(Folder.id == folder_id, Folder.owner_id == user_id, Folder.state == LifecycleState.ACTIVE)
            .one_or_none()
        )
        if folder is None:
            raise ServiceError("FOLDER_NOT_FOUND")
        return folder

    def _active(self, user_id: str):
        return self.db.query(Asset).filter(Asset.owner_id == user_id, Asset.state == LifecycleState.ACTIVE)

    def request_upload(self, user_id: str, file_name: str, mime_type: str, size: int, folder_id: str | None = None) -> dict:
        if folder_id:
            self._require_folder(user_id, folder_id)
        storage_key = generate_storage_key(user_id, file_name, folder_id)
        upload = self.storage.get_presigned_upload_url(storage_key, mime_type, self.url_expires_in)

        asset = Asset(
            name=file_name,
            original_name=file_name,
            mime_type=mime_type,
            size=size,
            storage_key=storage_key,
            folder_id=folder_id,
            owner_id=user_id,
        )
        self.db.add(asset)
        self.db.commit()
        self.db.refresh(asset)
        self.quota.record_usage(user_id, size)
        return {"upload_url": upload.url, "expires_in": upload.expires_in, "asset": asset}

    def get(self, user_id: str, asset_id: str) -> Asset:
        return self._owned(user_id, asset_id)

    def get_download_url(self, user_id: str, asset_id: str) -> dict:
        asset = self._owned(user_id, asset_id)
        download = self.storage.get_presigned_download_url(asset.storage_key, self.url_expires_in, asset.name)
        return {"url": download.url, "expires_in": download.expires_in}

    def list(self, user_id: str, offset: int, limit: int, folder_id: str | None = None) -> tuple[list[Asset], int]:
        if folder_id:
            self._require_folder(user_id, folder_id)
        query = self._active(user_id).filter(Asset.folder_id == folder_id)
        total = query.count()
        return query.order_by(Asset.created_at.desc()).offset(offset).limit(limit).all(), total

    def list_starred(self, user_id: str, offset: int, limit: int) -> tuple[list[Asset], int]:
        query = self._active(user_id).filter(Asset.is_starred.is_(True))
        total = query.count()
        return query.order_by(Asset.updated_at.desc()).offset(offset).limit(limit).all(), total

    def search(self, user_id: str, query: str, offset: int, limit: int) -> tuple[list[Asset], int]:
        base = self._active(user_id).filter(Asset.name.ilike(f"%{query}%"))
        total = base.count()
        return base.order_by(Asset.created_at.desc()).offset(offset).limit(limit).all(), total

    def toggle_star(self, user_id: str, asset_id: str) -> Asset:
        asset = self._owned(user_id, asset_id)
        asset.is_starred = not asset.is_starred
        self.db.commit()
        self.db.refresh(asset)
        return asset

    def update(self, user_id: str, asset_id: str, changes: dict) -> Asset:
        """Apply a partial update. ``folder_id`` present as ``None`` moves to the root."""
        asset = self._owned(user_id, asset_id)
        if "folder_id" in changes:
            if changes["folder_id"]:
                self._require_folder(user_id, changes["folder_id"])
            asset.folder_id = changes["folder_id"]
        if changes.get("name"):
            asset.name = changes["name"]
        self.db.commit()
        self.db.refresh(asset)
        return asset

    def trash(self, user_id: str, asset_id: str) -> Asset:
        asset = self._owned(user_id, asset_id)
        asset.move_to_trash()
        self.db.commit()
        return asset

    def restore(self, user_id: str, asset_id: str) -> Asset:
        asset = self._owned(user_id, asset_id, state=LifecycleState.TRASHED)
        asset.restore()
        if asset.folder_id:
            folder = self.db.get(Folder, asset.folder_id)
            if folder is None or folder.is_trashed:
                asset.folder_id = None
        self.db.commit()
        self.db.refresh(asset)
        return asset

    def _purge(self, user_id: str, assets: list[Asset]) -> int:
        if not assets:
            return 0
        keys = [asset.storage_key for asset in assets] + [asset.thumbnail_key for asset in assets if asset.thumbnail_key]
        failures = self.storage.delete_objects(keys).count(False)
        if failures:
            self.logger.warning("Some objects were not deleted", extra={"failed": failures, "total": len(keys)})

        asset_ids = [asset.id for asset in assets]
        freed = sum(asset.size for asset in assets)
        self.db.query(RecentActivity).filter(RecentActivity.asset_id.in_(asset_ids)).delete(synchronize_session=False)
        self.db.query(Share).filter(Share.asset_id.in_(asset_ids)).delete(synchronize_session=False)
        self.db.query(Asset).filter(Asset.id.in_(asset_ids)).delete(synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        if freed:
            self.quota.decrement(user_id, freed)
        return len(asset_ids)

    def permanently_delete(self, user_id: str, asset_id: str) -> None:
        asset = self._owned(user_id, asset_id, state=LifecycleState.TRASHED)
        self._purge(user_id, [asset])

    def copy(self, user_id: str, asset_id: str, target_folder_id: str | None = None) -> Asset:
        """Copy an asset. ``target_folder_id=None`` copies next to the source."""
        source = self._owned(user_id, asset_id)
        folder_id = target_folder_id or source.folder_id
        if target_folder_id:
            self._require_folder(user_id, target_folder_id)

        check = self.quota.check_available(user_id, source.size)
        if not check.available:
            raise ServiceError("QUOTA_EXCEEDED", {"required": check.required, "remaining": check.remaining})

        new_key = generate_storage_key(user_id, source.original_name, folder_id)
        self.storage.copy_object(source.storage_key, new_key)
        thumbnail_key = None
        if source.thumbnail_key:
            try:
                thumbnail_key = generate_thumbnail_key(new_key)
                self.storage.copy_object(source.thumbnail_key, thumbnail_key)
            except StorageError:
                self.logger.warning("Thumbnail not copied", extra={"asset_id": source.id})
                thumbnail_key = None

        name = f"Copy of {source.name}" if folder_id == source.folder_id else source.name
        clone = Asset(
            name=name,
            original_name=source.original_name,
            mime_type=source.mime_type,
            size=source.size,
            storage_key=new_key,
            thumbnail_key=thumbnail_key,
            folder_id=folder_id,
            owner_id=user_id,
        )
        self.db.add(clone)
        self.db.commit()
        self.db.refresh(clone)
        self.quota.record_usage(user_id, source.size)
        return clone

    def trashed_query(self, user_id: str):
        """Trashed assets not already listed through a trashed parent folder."""
        folder = aliased(Folder)
        return (
            self.db.query(Asset)
            .outerjoin(folder, Asset.folder_id == folder.id)
            .filter(
                Asset.owner_id == user_id,
                Asset.state == LifecycleState.TRASHED,
                or_(folder.id.is_(None), folder.state != LifecycleState.TRASHED),
            )
        )

    def list_trashed(self, user_id: str, offset: int, limit: int) -> tuple[list[Asset], int]:
        query = self.trashed_query(user_id)
        total = query.count()
        return query.order_by(Asset.trashed_at.desc()).offset(offset).limit(limit).all(), total

    def empty_trash(self, user_id: str) -> int:
        assets = self.db.query(Asset).filter(Asset.owner_id == user_id, Asset.state == LifecycleState.TRASHED).all()
        return self._purge(user_id, assets)

    def _archive_entries(self, user_id: str, asset_ids: list[str], folder_ids: list[str]) -> list[tuple[str, str]]:
        entries: list[tuple[str, str]] = []
        used: set[str] = set()
        if asset_ids:
            for asset in self._active(user_id).filter(Asset.id.in_(asset_ids)).order_by(Asset.name.asc()):
                entries.append((_unique_path(asset.name, used), asset.storage_key))

        for folder_id in folder_ids:
            root = (
                self.db.query(Folder)
                .filter(Folder.id == folder_id, Folder.owner_id == user_id, Folder.state == LifecycleState.ACTIVE)
                .one_or_none()
            )
            if root is None:
                continue
            folders = collect_subtree(self.db, root, state=LifecycleState.ACTIVE)
            paths = {root.id: _unique_path(root.name, used)}
            for folder in folders[1:]:
                paths[folder.id] = posixpath.join(paths[folder.parent_id], folder.name)
            assets = self._active(user_id).filter(Asset.folder_id.in_(list(paths))).order_by(Asset.name.asc())
            for asset in assets:
                entries.append((_unique_path(posixpath.join(paths[asset.folder_id], asset.name), used), asset.storage_key))
        return entries

    def _fetch(self, key: str) -> bytes | None:
        try:
            return self.storage.read_bytes(key)
        except StorageError as exc:
            self.logger.warning("Skipping object in archive", extra={"key": key, "error": str(exc)})
            return None

    def bulk_download(self, user_id: str, asset_ids: list[str], folder_ids: list[str]) -> BinaryIO:
        """Build a ZIP of the selection and return it rewound, ready to stream."""
        entries = self._archive_entries(user_id, asset_ids, folder_ids)
        if not entries:
            raise ServiceError("NOTHING_TO_DOWNLOAD")
        return self._build_archive(user_id, entries)

    def _accessible(self, asset_id: str) -> Asset:
        asset = self.db.query(Asset).filter(Asset.id == asset_id, Asset.state == LifecycleState.ACTIVE).one_or_none()
        if asset is None:
            raise ServiceError("ASSET_NOT_FOUND")
        return asset

    def get_shared_download_url(self, asset_id: str) -> dict:
        """Presigned GET for an asset the caller was granted access to. Access is checked by the caller."""
        asset = self._accessible(asset_id)
        download = self.storage.get_presigned_download_url(asset.storage_key, self.url_expires_in, asset.name)
        return {"url": download.url, "expires_in": download.expires_in, "file_name": asset.name}

    def shared_bulk_download(self, user_id: str, asset_ids: list[str]) -> tuple[BinaryIO, str]:
        """ZIP of shared assets, flat. Returns the archive and a download filename."""
        assets = (
            self.db.query(Asset)
            .filter(Asset.id.in_(asset_ids), Asset.state == LifecycleState.ACTIVE)
            .order_by(Asset.name.asc())
            .all()
        )
        if not assets:
            raise ServiceError("NOTHING_SHARED")
        used: set[str] = set()
        entries = [(_unique_path(asset.name, used), asset.storage_key) for asset in assets]
        filename = f"{assets[0].name}.zip" if len(assets) == 1 else f"shared-{int(time.time() * 1000)}.zip"
        return self._build_archive(user_id, entries), filename

    def _build_archive(self, user_id: str, entries: list[tuple[str, str]]) -> BinaryIO:
        archive = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE)
        skipped = 0
        with ThreadPoolExecutor(max_workers=DOWNLOAD_CONCURRENCY, thread_name_prefix="zip-fetch") as pool:
            contents = pool.map(self._fetch, [key for _, key in entries])
            with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
                for (path, _), data in zip(entries, contents):
                    if data is None:
                        skipped += 1
                        continue
                    bundle.writestr(path, data)
        archive.seek(0)
        self.logger.info("Archive built", extra={"user_id": user_id, "files": len(entries) - skipped, "skipped": skipped})
        return archive
