from .asset import Asset
from .folder import Folder
from .lifecycle import LifecycleState, TrashableMixin
from .recent_activity import RecentActivity
from .share import Share
from .storage_quota import StorageQuota
from .user import AuthSession, User

__all__ = [
    "Asset",
    "AuthSession",
    "Folder",
    "LifecycleState",
    "RecentActivity",
    "Share",
    "StorageQuota",
    "TrashableMixin",
    "User",
]
