from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .core.config import Settings
from .core.database import get_db
from .core.logger import get_logger
from .services.assets import AssetService
from .services.auth import AuthService
from .services.folders import FolderService
from .services.object_storage import ObjectStorage
from .services.quota import QuotaLedger
from .services.recent import RecentService
from .services.shares import ShareService
from .services.thumbnails import ThumbnailPipeline


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def get_thumbnail_pipeline(request: Request) -> ThumbnailPipeline:
    return request.app.state.thumbnails


def get_quota(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)) -> QuotaLedger:
    return QuotaLedger(db, settings.default_storage_quota, get_logger("quota"))


def get_asset_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    quota: QuotaLedger = Depends(get_quota),
    settings: Settings = Depends(get_app_settings),
) -> AssetService:
    return AssetService(db, storage, quota, get_logger("assets"), settings.presigned_url_expires_seconds)


def get_folder_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    quota: QuotaLedger = Depends(get_quota),
) -> FolderService:
    return FolderService(db, storage, quota, get_logger("folders"))


def get_share_service(
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> ShareService:
    return ShareService(db, storage, get_logger("shares"), settings.bcrypt_rounds, settings.presigned_url_expires_seconds)


def get_recent_service(db: Session = Depends(get_db)) -> RecentService:
    return RecentService(db, get_logger("recent"))


def get_auth_service(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)) -> AuthService:
    return AuthService(db, settings, get_logger("auth"))
