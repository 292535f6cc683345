from datetime import datetime

from pydantic import BaseModel

from .asset import AssetRead
from .common import ItemType
from .folder import FolderRead


class RecordAccess(BaseModel):
    item_id: str
    item_type: ItemType


class RecentItemRead(BaseModel):
    id: str
    item_type: ItemType
    accessed_at: datetime
    asset: AssetRead | None = None
    folder: FolderRead | None = None

    class Config:
        from_attributes = True
