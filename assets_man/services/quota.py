"""
Per-user storage accounting.

``used_storage`` is a running counter maintained by :meth:`QuotaLedger.increment`
and :meth:`QuotaLedger.decrement`. The check that gates uploads is advisory and
not transactional, so concurrent uploads can overshoot the limit; the counter
is brought back in line with the real asset sizes by :meth:`QuotaLedger.recalculate`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import DEFAULT_STORAGE_QUOTA
from ..models.asset import Asset
from ..models.lifecycle import LifecycleState
from ..models.storage_quota import StorageQuota

_UNITS = ["B", "KB", "MB", "GB", "TB"]


@dataclass(frozen=True)
class QuotaCheck:
    available: bool
    required: int
    remaining: int


@dataclass(frozen=True)
class StorageStats:
    used_storage: int
    quota_limit: int
    used_percentage: float
    remaining_storage: int
    formatted_used: str
    formatted_limit: str
    formatted_remaining: str


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    exponent = 0
    value = float(size)
    while value >= 1024 and exponent < len(_UNITS) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[exponent]}"


class QuotaLedger:
    def __init__(self, db: Session, default_limit: int = DEFAULT_STORAGE_QUOTA, logger: logging.Logger | None = None):
        self.db = db
        self.default_limit = default_limit
        self.logger = logger or logging.getLogger("assets_man.quota")

    def get_or_create(self, user_id: str) -> StorageQuota:
        quota = self.db.query(StorageQuota).filter(StorageQuota.user_id == user_id).one_or_none()
        if quota is not None:
            return quota
        quota = StorageQuota(user_id=user_id, quota_limit=self.default_limit, used_storage=0)
        self.db.add(quota)
        self.db.commit()
        self.db.refresh(quota)
        return quota

    def get_stats(self, user_id: str) -> StorageStats:
        quota = self.get_or_create(user_id)
        used = quota.used_storage
        limit = quota.quota_limit
        percentage = min(100.0, used / limit * 100) if limit > 0 else 0.0
        remaining = max(0, limit - used)
        return StorageStats(
            used_storage=used,
            quota_limit=limit,
            used_percentage=round(percentage, 2),
            remaining_storage=remaining,
            formatted_used=format_bytes(used),
            formatted_limit=format_bytes(limit),
            formatted_remaining=format_bytes(remaining),
        )

    def check_available(self, user_id: str, file_size: int) -> QuotaCheck:
        quota = self.get_or_create(user_id)
        remaining = quota.quota_limit - quota.used_storage
        return QuotaCheck(available=remaining >= file_size, required=file_size, remaining=remaining)

    def increment(self, user_id: str, size: int) -> StorageQuota:
        quota = self.get_or_create(user_id)
        quota.used_storage = quota.used_storage + size
        quota.updated_at = datetime.utcnow()
        self.db.commit()
        return quota

    def decrement(self, user_id: str, size: int) -> StorageQuota:
        quota = self.get_or_create(user_id)
        quota.used_storage = max(0, quota.used_storage - size)
        quota.updated_at = datetime.utcnow()
        self.db.commit()
        return quota

    def record_usage(self, user_id: str, size: int) -> bool:
        """Increment after the asset row is already committed.

        A failure is logged rather than raised so the caller still answers.
        The counter is repaired by :meth:`recalculate`.
        """
        try:
            self.increment(user_id, size)
        except SQLAlchemyError:
            self.db.rollback()
            self.logger.exception("Storage counter not updated", extra={"user_id": user_id, "size": size})
            return False
        return True

    def recalculate(self, user_id: str) -> StorageQuota:
        actual = (
            self.db.query(func.coalesce(func.sum(Asset.size), 0))
            .filter(Asset.owner_id == user_id, Asset.state == LifecycleState.ACTIVE)
            .scalar()
        )
        quota = self.get_or_create(user_id)
        if quota.used_storage != actual:
            self.logger.info(
                "Storage counter corrected",
                extra={"user_id": user_id, "previous": quota.used_storage, "actual": int(actual)},
            )
        quota.used_storage = int(actual)
        quota.updated_at = datetime.utcnow()
        self.db.commit()
        return quota

    def update_limit(self, user_id: str, new_limit: int) -> StorageQuota:
        quota = self.get_or_create(user_id)
        quota.quota_limit = new_limit
        quota.updated_at = datetime.utcnow()
        self.db.commit()
        return quota
