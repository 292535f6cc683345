from datetime import datetime

from pydantic import BaseModel, Field

from ..models.lifecycle import LifecycleState


class AssetRead(BaseModel):
    id: str
    name: str
    original_name: str
    mime_type: str
    size: int
    storage_key: str
    thumbnail_key: str | None = None
    folder_id: str | None = None
    owner_id: str
    is_starred: bool
    state: LifecycleState
    trashed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UploadRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=255)
    size: int = Field(ge=0)
    folder_id: str | None = None


class AssetUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    folder_id: str | None = None


class AssetCopy(BaseModel):
    target_folder_id: str | None = None


class BulkDownloadRequest(BaseModel):
    asset_ids: list[str] = Field(default_factory=list)
    folder_ids: list[str] = Field(default_factory=list)


class SharedBulkDownloadRequest(BaseModel):
    asset_ids: list[str] = Field(min_length=1)


class ThumbnailResultRead(BaseModel):
    success: bool
    thumbnail_key: str | None = None
    error: str | None = None


class ThumbnailBatchRequest(BaseModel):
    asset_ids: list[str] = Field(min_length=1)
