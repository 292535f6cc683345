"""
Folder tree operations.

Folders form a forest per owner through ``parent_id``. Trash and restore walk
the subtree breadth-first and stamp every affected row with the same
``trashed_at`` so a later restore brings back exactly what was trashed together.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from ..core.errors import ServiceError
from ..models.asset import Asset
from ..models.folder import Folder
from ..models.lifecycle import LifecycleState
from ..models.recent_activity import RecentActivity
from ..models.share import Share
from .object_storage import ObjectStorage, StorageError, generate_storage_key, generate_thumbnail_key
from .quota import QuotaLedger


def collect_subtree(db: Session, root: Folder, state: LifecycleState | None = None, trashed_at: datetime | None = None) -> list[Folder]:
    """Return ``root`` and its descendants, parents before children.

    With ``state`` or ``trashed_at`` set, a child that does not match is
    skipped together with everything below it.
    """
    folders = [root]
    frontier = [root.id]
    seen = {root.id}
    while frontier:
        query = db.query(Folder).filter(Folder.parent_id.in_(frontier))
        if state is not None:
            query = query.filter(Folder.state == state)
        if trashed_at is not None:
            query = query.filter(Folder.trashed_at == trashed_at)
        children = [child for child in query.all() if child.id not in seen]
        seen.update(child.id for child in children)
        folders.extend(children)
        frontier = [child.id for child in children]
    return folders


def folder_path(db: Session, folder: Folder) -> list[Folder]:
    """Root-first chain of ancestors ending with ``folder`` itself."""
    chain = [folder]
    seen = {folder.id}
    cursor = folder
    while cursor.parent_id and cursor.parent_id not in seen:
        parent = db.get(Folder, cursor.parent_id)
        if parent is None:
            break
        seen.add(parent.id)
        chain.append(parent)
        cursor = parent
    chain.reverse()
    return chain


def is_within(db: Session, folder_id: str, ancestor_id: str) -> bool:
    folder = db.get(Folder, folder_id)
    if folder is None:
        return False
    return any(item.id == ancestor_id for item in folder_path(db, folder))


class FolderService:
    def __init__(self, db: Session, storage: ObjectStorage, quota: QuotaLedger | None = None, logger: logging.Logger | None = None):
        self.db = db
        self.storage = storage
        self.quota = quota or QuotaLedger(db)
        self.logger = logger or logging.getLogger("assets_man.folders")

    def _owned(self, user_id: str, folder_id: str, state: LifecycleState = LifecycleState.ACTIVE, token: str = "FOLDER_NOT_FOUND") -> Folder:
        folder = (
            self.db.query(Folder)
            .filter(Folder.id == folder_id, Folder.owner_id == user_id, Folder.state == state)
            .one_or_none()
        )
        if folder is None:
            raise ServiceError(token)
        return folder

    def _active(self, user_id: str):
        return self.db.query(Folder).filter(Folder.owner_id == user_id, Folder.state == LifecycleState.ACTIVE)

    def create(self, user_id: str, name: str, parent_id: str | None = None) -> Folder:
        if parent_id:
            self._owned(user_id, parent_id, token="PARENT_NOT_FOUND")
        folder = Folder(name=name, parent_id=parent_id, owner_id=user_id)
        self.db.add(folder)
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def get(self, user_id: str, folder_id: str) -> tuple[Folder, list[Folder]]:
        folder = self._owned(user_id, folder_id)
        return folder, folder_path(self.db, folder)

    def contents(self, user_id: str, folder_id: str | None = None) -> dict:
        if folder_id:
            self._owned(user_id, folder_id)
        folders = self._active(user_id).filter(Folder.parent_id == folder_id).order_by(Folder.name.asc()).all()
        assets = (
            self.db.query(Asset)
            .filter(Asset.owner_id == user_id, Asset.state == LifecycleState.ACTIVE, Asset.folder_id == folder_id)
            .order_by(Asset.created_at.desc())
            .all()
        )
        return {"folders": folders, "assets": assets}

    def list_all(self, user_id: str) -> list[Folder]:
        return self._active(user_id).order_by(Folder.name.asc()).all()

    def list_starred(self, user_id: str) -> list[Folder]:
        return self._active(user_id).filter(Folder.is_starred.is_(True)).order_by(Folder.updated_at.desc()).all()

    def search(self, user_id: str, query: str, offset: int, limit: int) -> tuple[list[Folder], int]:
        base = self._active(user_id).filter(Folder.name.ilike(f"%{query}%"))
        total = base.count()
        return base.order_by(Folder.name.asc()).offset(offset).limit(limit).all(), total

    def update(self, user_id: str, folder_id: str, name: str | None = None) -> Folder:
        folder = self._owned(user_id, folder_id)
        if name is not None:
            folder.name = name
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def toggle_star(self, user_id: str, folder_id: str) -> Folder:
        folder = self._owned(user_id, folder_id)
        folder.is_starred = not folder.is_starred
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def move(self, user_id: str, folder_id: str, parent_id: str | None) -> Folder:
        folder = self._owned(user_id, folder_id)
        if parent_id == folder.id:
            raise ServiceError("INVALID_MOVE")
        if parent_id:
            target = self._owned(user_id, parent_id, token="PARENT_NOT_FOUND")
            if any(ancestor.id == folder.id for ancestor in folder_path(self.db, target)):
                raise ServiceError("INVALID_MOVE")
        folder.parent_id = parent_id
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def copy(self, user_id: str, folder_id: str, target_parent_id: str | None = None) -> Folder:
        """Deep-copy a folder. ``target_parent_id=None`` copies next to the source."""
        source = self._owned(user_id, folder_id)
        parent_id = target_parent_id or source.parent_id
        if target_parent_id:
            target = self._owned(user_id, target_parent_id, token="PARENT_NOT_FOUND")
            if any(ancestor.id == source.id for ancestor in folder_path(self.db, target)):
                raise ServiceError("INVALID_MOVE")

        folders = collect_subtree(self.db, source, state=LifecycleState.ACTIVE)
        assets = (
            self.db.query(Asset)
            .filter(Asset.folder_id.in_([f.id for f in folders]), Asset.state == LifecycleState.ACTIVE)
            .all()
        )
        total_size = sum(asset.size for asset in assets)
        check = self.quota.check_available(user_id, total_size)
        if not check.available:
            raise ServiceError("QUOTA_EXCEEDED", {"required": check.required, "remaining": check.remaining})

        mapping: dict[str, str] = {}
        copied_keys: list[str] = []
        try:
            for folder in folders:
                if folder.id == source.id:
                    name = f"Copy of {folder.name}" if parent_id == source.parent_id else folder.name
                    clone = Folder(name=name, parent_id=parent_id, owner_id=user_id)
                else:
                    clone = Folder(name=folder.name, parent_id=mapping[folder.parent_id], owner_id=user_id)
                self.db.add(clone)
                self.db.flush()
                mapping[folder.id] = clone.id

            for asset in assets:
                new_folder_id = mapping[asset.folder_id]
                new_key = generate_storage_key(user_id, asset.original_name, new_folder_id)
                self.storage.copy_object(asset.storage_key, new_key)
                copied_keys.append(new_key)
                thumbnail_key = None
                if asset.thumbnail_key:
                    try:
                        thumbnail_key = generate_thumbnail_key(new_key)
                        self.storage.copy_object(asset.thumbnail_key, thumbnail_key)
                        copied_keys.append(thumbnail_key)
                    except StorageError:
                        self.logger.warning("Thumbnail not copied", extra={"asset_id": asset.id})
                        thumbnail_key = None
                self.db.add(
                    Asset(
                        name=asset.name,
                        original_name=asset.original_name,
                        mime_type=asset.mime_type,
                        size=asset.size,
                        storage_key=new_key,
                        thumbnail_key=thumbnail_key,
                        folder_id=new_folder_id,
                        owner_id=user_id,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.delete_objects(copied_keys)
            raise

        if total_size:
            self.quota.record_usage(user_id, total_size)
        self.logger.info("Folder copied", extra={"folder_id": folder_id, "folders": len(folders), "assets": len(assets)})
        return self.db.get(Folder, mapping[source.id])

    def trash(self, user_id: str, folder_id: str) -> Folder:
        folder = self._owned(user_id, folder_id)
        now = datetime.utcnow()
        folders = collect_subtree(self.db, folder, state=LifecycleState.ACTIVE)
        assets = (
            self.db.query(Asset)
            .filter(Asset.folder_id.in_([f.id for f in folders]), Asset.state == LifecycleState.ACTIVE)
            .all()
        )
        for item in [*folders, *assets]:
            item.move_to_trash(now)
        self.db.commit()
        return folder

    def restore(self, user_id: str, folder_id: str) -> Folder:
        folder = self._owned(user_id, folder_id, state=LifecycleState.TRASHED)
        stamp = folder.trashed_at
        folders = collect_subtree(self.db, folder, state=LifecycleState.TRASHED, trashed_at=stamp)
        assets = (
            self.db.query(Asset)
            .filter(
                Asset.folder_id.in_([f.id for f in folders]),
                Asset.state == LifecycleState.TRASHED,
                Asset.trashed_at == stamp,
            )
            .all()
        )
        for item in [*folders, *assets]:
            item.restore()
        if folder.parent_id:
            parent = self.db.get(Folder, folder.parent_id)
            if parent is None or parent.is_trashed:
                folder.parent_id = None
        self.db.commit()
        self.db.refresh(folder)
        return folder

    def _purge(self, user_id: str, roots: list[Folder]) -> tuple[int, int]:
        folder_ids: list[str] = []
        for root in roots:
            folder_ids.extend(f.id for f in collect_subtree(self.db, root) if f.id not in folder_ids)
        if not folder_ids:
            return 0, 0
        assets = self.db.query(Asset).filter(Asset.folder_id.in_(folder_ids)).all()
        asset_ids = [asset.id for asset in assets]
        freed = sum(asset.size for asset in assets)

        keys = [asset.storage_key for asset in assets] + [asset.thumbnail_key for asset in assets if asset.thumbnail_key]
        failures = self.storage.delete_objects(keys).count(False)
        if failures:
            self.logger.warning("Some objects were not deleted", extra={"failed": failures, "total": len(keys)})

        if asset_ids:
            self.db.query(RecentActivity).filter(RecentActivity.asset_id.in_(asset_ids)).delete(synchronize_session=False)
            self.db.query(Share).filter(Share.asset_id.in_(asset_ids)).delete(synchronize_session=False)
            self.db.query(Asset).filter(Asset.id.in_(asset_ids)).delete(synchronize_session=False)
        self.db.query(RecentActivity).filter(RecentActivity.folder_id.in_(folder_ids)).delete(synchronize_session=False)
        self.db.query(Share).filter(Share.folder_id.in_(folder_ids)).delete(synchronize_session=False)
        self.db.query(Folder).filter(Folder.id.in_(folder_ids)).delete(synchronize_session=False)
        self.db.commit()
        self.db.expire_all()

        if freed:
            self.quota.decrement(user_id, freed)
        return len(folder_ids), len(asset_ids)

    def permanently_delete(self, user_id: str, folder_id: str) -> dict:
        folder = self._owned(user_id, folder_id, state=LifecycleState.TRASHED)
        folders, assets = self._purge(user_id, [folder])
        return {"deleted_folders": folders, "deleted_assets": assets}

    def trashed_query(self, user_id: str):
        """Top-level trashed folders: those whose parent is not trashed too."""
        parent = aliased(Folder)
        return (
            self.db.query(Folder)
            .outerjoin(parent, Folder.parent_id == parent.id)
            .filter(
                Folder.owner_id == user_id,
                Folder.state == LifecycleState.TRASHED,
                or_(parent.id.is_(None), parent.state != LifecycleState.TRASHED),
            )
        )

    def list_trashed(self, user_id: str, offset: int, limit: int) -> tuple[list[Folder], int]:
        query = self.trashed_query(user_id)
        total = query.count()
        return query.order_by(Folder.trashed_at.desc()).offset(offset).limit(limit).all(), total

    def empty_trash(self, user_id: str) -> int:
        roots = self.trashed_query(user_id).all()
        folders, _ = self._purge(user_id, roots)
        return folders
