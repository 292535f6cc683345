from datetime import datetime

from pydantic import BaseModel, Field

from ..models.lifecycle import LifecycleState


class FolderBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class FolderCreate(FolderBase):
    parent_id: str | None = None


class FolderUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class FolderMove(BaseModel):
    parent_id: str | None = None


class FolderCopy(BaseModel):
    target_parent_id: str | None = None


class FolderRead(FolderBase):
    id: str
    parent_id: str | None = None
    owner_id: str
    is_starred: bool
    state: LifecycleState
    trashed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BreadcrumbItem(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True
