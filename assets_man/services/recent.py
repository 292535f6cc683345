import logging
from datetime import datetime

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from ..core.errors import ServiceError
from ..models.asset import Asset
from ..models.folder import Folder
from ..models.lifecycle import LifecycleState
from ..models.recent_activity import RecentActivity

MAX_RECENT_ITEMS = 100


class RecentService:
    def __init__(self, db: Session, logger: logging.Logger | None = None, max_items: int = MAX_RECENT_ITEMS):
        self.db = db
        self.logger = logger or logging.getLogger("assets_man.recent")
        self.max_items = max_items

    def _item_column(self, item_type: str):
        return RecentActivity.asset_id if item_type == "asset" else RecentActivity.folder_id

    def _require_item(self, user_id: str, item_id: str, item_type: str) -> None:
        model = Asset if item_type == "asset" else Folder
        exists = (
            self.db.query(model.id)
            .filter(model.id == item_id, model.owner_id == user_id, model.state == LifecycleState.ACTIVE)
            .first()
        )
        if exists is None:
            raise ServiceError("ASSET_NOT_FOUND" if item_type == "asset" else "FOLDER_NOT_FOUND")

    def record_access(self, user_id: str, item_id: str, item_type: str) -> RecentActivity:
        self._require_item(user_id, item_id, item_type)
        column = self._item_column(item_type)
        entry = (
            self.db.query(RecentActivity)
            .filter(RecentActivity.user_id == user_id, column == item_id)
            .one_or_none()
        )
        if entry is None:
            entry = RecentActivity(user_id=user_id, item_type=item_type)
            setattr(entry, column.key, item_id)
            self.db.add(entry)
        entry.accessed_at = datetime.utcnow()
        self.db.commit()
        self.prune(user_id)
        return entry

    def prune(self, user_id: str) -> int:
        stale = (
            self.db.query(RecentActivity.id)
            .filter(RecentActivity.user_id == user_id)
            .order_by(RecentActivity.accessed_at.desc())
            .offset(self.max_items)
            .all()
        )
        if not stale:
            return 0
        removed = (
            self.db.query(RecentActivity)
            .filter(RecentActivity.id.in_([row.id for row in stale]))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed

    def list_recent(self, user_id: str, offset: int, limit: int) -> tuple[list[RecentActivity], int]:
        query = (
            self.db.query(RecentActivity)
            .outerjoin(Asset, RecentActivity.asset_id == Asset.id)
            .outerjoin(Folder, RecentActivity.folder_id == Folder.id)
            .filter(
                RecentActivity.user_id == user_id,
                or_(
                    and_(RecentActivity.item_type == "asset", Asset.state == LifecycleState.ACTIVE),
                    and_(RecentActivity.item_type == "folder", Folder.state == LifecycleState.ACTIVE),
                ),
            )
        )
        total = query.count()
        items = (
            query.options(joinedload(RecentActivity.asset), joinedload(RecentActivity.folder))
            .order_by(RecentActivity.accessed_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def clear(self, user_id: str) -> int:
        removed = self.db.query(RecentActivity).filter(RecentActivity.user_id == user_id).delete(synchronize_session=False)
        self.db.commit()
        return removed

    def remove(self, user_id: str, item_id: str, item_type: str) -> None:
        removed = (
            self.db.query(RecentActivity)
            .filter(RecentActivity.user_id == user_id, self._item_column(item_type) == item_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if not removed:
            raise ServiceError("RECENT_NOT_FOUND")
