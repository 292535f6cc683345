"""
Sharing of folders and assets.

Two kinds of share exist: *user* shares name a recipient by email (linked to
an account when one exists) and *link* shares carry an unguessable token that
anyone can open, optionally guarded by a password and an expiry.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.errors import ServiceError
from ..core.security import hash_password, verify_password
from ..models.asset import Asset
from ..models.folder import Folder
from ..models.lifecycle import LifecycleState
from ..models.share import Share
from ..models.user import User
from .folders import folder_path, is_within
from .object_storage import DEFAULT_EXPIRES_IN, ObjectStorage

PERMISSION_RANK = {"view": 1, "edit": 2}


class ShareService:
    def __init__(
        self,
        db: Session,
        storage: ObjectStorage,
        logger: logging.Logger | None = None,
        bcrypt_rounds: int = 12,
        url_expires_in: int = DEFAULT_EXPIRES_IN,
    ):
        self.db = db
        self.storage = storage
        self.logger = logger or logging.getLogger("assets_man.shares")
        self.bcrypt_rounds = bcrypt_rounds
        self.url_expires_in = url_expires_in

    def _owned_item(self, user_id: str, folder_id: str | None, asset_id: str | None) -> Folder | Asset:
        model, item_id = (Folder, folder_id) if folder_id else (Asset, asset_id)
        item = (
            self.db.query(model)
            .filter(model.id == item_id, model.owner_id == user_id, model.state == LifecycleState.ACTIVE)
            .one_or_none()
        )
        if item is None:
            raise ServiceError("ITEM_NOT_FOUND")
        return item

    def _owned_share(self, user_id: str, share_id: str) -> Share:
        share = self.db.query(Share).filter(Share.id == share_id, Share.owner_id == user_id).one_or_none()
        if share is None:
            raise ServiceError("SHARE_NOT_FOUND")
        return share

    @staticmethod
    def _expiry(hours: float | None) -> datetime | None:
        return datetime.utcnow() + timedelta(hours=hours) if hours else None

    def create_user_share(
        self,
        user_id: str,
        email: str,
        folder_id: str | None = None,
        asset_id: str | None = None,
        permission: str = "view",
    ) -> Share:
        if bool(folder_id) == bool(asset_id):
            raise ServiceError("INVALID_TARGET")
        self._owned_item(user_id, folder_id, asset_id)
        email = email.strip().lower()

        owner = self.db.get(User, user_id)
        if owner is not None and owner.email == email:
            raise ServiceError("CANNOT_SHARE_WITH_SELF")

        duplicate = (
            self.db.query(Share.id)
            .filter(
                Share.owner_id == user_id,
                Share.share_type == "user",
                Share.shared_with_email == email,
                Share.folder_id == folder_id if folder_id else Share.asset_id == asset_id,
            )
            .first()
        )
        if duplicate is not None:
            raise ServiceError("SHARE_ALREADY_EXISTS")

        recipient = self.db.query(User).filter(User.email == email).one_or_none()
        share = Share(
            owner_id=user_id,
            folder_id=folder_id,
            asset_id=asset_id,
            share_type="user",
            shared_with_user_id=recipient.id if recipient else None,
            shared_with_email=email,
            permission=permission,
        )
        self.db.add(share)
        self.db.commit()
        self.db.refresh(share)
        self.logger.info("User share created", extra={"share_id": share.id, "linked": recipient is not None})
        return share

    def create_link_share(
        self,
        user_id: str,
        folder_id: str | None = None,
        asset_id: str | None = None,
        permission: str = "view",
        password: str | None = None,
        expires_in: float | None = None,
    ) -> Share:
        """``expires_in`` is in hours; ``None`` means the link never expires."""
        if bool(folder_id) == bool(asset_id):
            raise ServiceError("INVALID_TARGET")
        self._owned_item(user_id, folder_id, asset_id)
        share = Share(
            owner_id=user_id,
            folder_id=folder_id,
            asset_id=asset_id,
            share_type="link",
            permission=permission,
            link_token=secrets.token_hex(32),
            link_password=hash_password(password, self.bcrypt_rounds) if password else None,
            expires_at=self._expiry(expires_in),
        )
        self.db.add(share)
        self.db.commit()
        self.db.refresh(share)
        return share

    def update_share(self, user_id: str, share_id: str, changes: dict) -> Share:
        """Partial update. ``password`` or ``expires_in`` given as ``None`` clears it."""
        share = self._owned_share(user_id, share_id)
        if changes.get("permission"):
            share.permission = changes["permission"]
        if "password" in changes:
            password = changes["password"]
            share.link_password = hash_password(password, self.bcrypt_rounds) if password else None
        if "expires_in" in changes:
            share.expires_at = self._expiry(changes["expires_in"])
        self.db.commit()
        self.db.refresh(share)
        return share

    def delete_share(self, user_id: str, share_id: str) -> None:
        share = self._owned_share(user_id, share_id)
        self.db.delete(share)
        self.db.commit()

    def get_share(self, user_id: str, share_id: str) -> Share:
        return self._owned_share(user_id, share_id)

    def list_for_item(self, user_id: str, item_id: str, item_type: str) -> list[Share]:
        if item_type == "folder":
            self._owned_item(user_id, item_id, None)
            column = Share.folder_id
        else:
            self._owned_item(user_id, None, item_id)
            column = Share.asset_id
        return (
            self.db.query(Share)
            .filter(Share.owner_id == user_id, column == item_id)
            .order_by(Share.created_at.desc())
            .all()
        )

    def list_mine(self, user_id: str) -> list[dict]:
        shares = self.db.query(Share).filter(Share.owner_id == user_id).order_by(Share.created_at.desc()).all()
        return [self.details(share) for share in shares if self._item(share) is not None]

    def list_shared_with_me(self, user_id: str, email: str) -> list[dict]:
        now = datetime.utcnow()
        shares = (
            self.db.query(Share)
            .filter(
                Share.share_type == "user",
                or_(Share.shared_with_user_id == user_id, Share.shared_with_email == email.lower()),
            )
            .order_by(Share.created_at.desc())
            .all()
        )
        return [self.details(share) for share in shares if not share.is_expired(now) and self._item(share) is not None]

    def _item(self, share: Share) -> Folder | Asset | None:
        item = share.folder if share.folder_id else share.asset
        if item is None or item.is_trashed:
            return None
        return item

    def details(self, share: Share) -> dict:
        item = self._item(share)
        is_asset = isinstance(item, Asset)
        return {
            "id": share.id,
            "owner_id": share.owner_id,
            "folder_id": share.folder_id,
            "asset_id": share.asset_id,
            "share_type": share.share_type,
            "shared_with_user_id": share.shared_with_user_id,
            "shared_with_email": share.shared_with_email,
            "permission": share.permission,
            "link_token": share.link_token,
            "has_password": share.has_password,
            "expires_at": share.expires_at,
            "created_at": share.created_at,
            "updated_at": share.updated_at,
            "item_name": item.name if item is not None else "",
            "item_type": share.item_type,
            "mime_type": item.mime_type if is_asset else None,
            "size": item.size if is_asset else None,
            "owner_name": share.owner.name if share.owner else None,
            "shared_with_name": share.shared_with_user.name if share.shared_with_user else None,
        }

    def resolve_link(self, token: str) -> Share:
        share = self.db.query(Share).filter(Share.link_token == token, Share.share_type == "link").one_or_none()
        if share is None or share.is_expired() or self._item(share) is None:
            raise ServiceError("LINK_NOT_FOUND")
        return share

    def access_link(self, token: str, password: str | None) -> Share:
        share = self.resolve_link(token)
        if share.link_password:
            if not password:
                raise ServiceError("PASSWORD_REQUIRED", {"password": ["Password required"]})
            if not verify_password(password, share.link_password):
                raise ServiceError("INVALID_PASSWORD")
        return share

    def link_download(self, token: str, password: str | None) -> dict:
        share = self.access_link(token, password)
        if not share.asset_id:
            raise ServiceError("NOT_AN_ASSET_SHARE")
        asset = share.asset
        download = self.storage.get_presigned_download_url(asset.storage_key, self.url_expires_in, asset.name)
        return {"url": download.url, "expires_in": download.expires_in, "file_name": asset.name}

    def link_folder_contents(self, token: str, password: str | None, folder_id: str | None = None) -> dict:
        share = self.access_link(token, password)
        if not share.folder_id:
            raise ServiceError("NOT_A_FOLDER_SHARE")
        current_id = folder_id or share.folder_id
        if current_id != share.folder_id and not is_within(self.db, current_id, share.folder_id):
            raise ServiceError("FOLDER_NOT_FOUND")
        current = self.db.get(Folder, current_id)
        if current is None or current.is_trashed:
            raise ServiceError("FOLDER_NOT_FOUND")

        path = folder_path(self.db, current)
        start = next(index for index, item in enumerate(path) if item.id == share.folder_id)
        folders = (
            self.db.query(Folder)
            .filter(Folder.parent_id == current.id, Folder.state == LifecycleState.ACTIVE)
            .order_by(Folder.name.asc())
            .all()
        )
        assets = (
            self.db.query(Asset)
            .filter(Asset.folder_id == current.id, Asset.state == LifecycleState.ACTIVE)
            .order_by(Asset.name.asc())
            .all()
        )
        return {"folder": current, "breadcrumb": path[start:], "folders": folders, "assets": assets}

    def check_share_access(self, user_id: str, email: str, item_id: str, item_type: str, required_permission: str = "view") -> bool:
        """True if the user owns the item or holds a live user share on it or an ancestor folder."""
        model = Asset if item_type == "asset" else Folder
        item = self.db.get(model, item_id)
        if item is None or item.is_trashed:
            return False
        if item.owner_id == user_id:
            return True

        folder_ids: list[str] = []
        if item_type == "folder":
            folder_ids = [folder.id for folder in folder_path(self.db, item)]
        elif item.folder_id:
            parent = self.db.get(Folder, item.folder_id)
            if parent is not None:
                folder_ids = [folder.id for folder in folder_path(self.db, parent)]

        targets = [Share.folder_id.in_(folder_ids)] if folder_ids else []
        if item_type == "asset":
            targets.append(Share.asset_id == item_id)
        if not targets:
            return False

        now = datetime.utcnow()
        shares = (
            self.db.query(Share)
            .filter(
                Share.share_type == "user",
                or_(Share.shared_with_user_id == user_id, Share.shared_with_email == email.lower()),
                or_(*targets),
            )
            .all()
        )
        needed = PERMISSION_RANK.get(required_permission, PERMISSION_RANK["edit"])
        return any(not share.is_expired(now) and PERMISSION_RANK.get(share.permission, 0) >= needed for share in shares)
