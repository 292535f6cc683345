from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

SharePermission = Literal["view", "edit"]


class _ShareTarget(BaseModel):
    folder_id: str | None = None
    asset_id: str | None = None

    @model_validator(mode="after")
    def _exactly_one_item(self):
        if bool(self.folder_id) == bool(self.asset_id):
            raise ValueError("Exactly one of folder_id or asset_id must be provided")
        return self


class UserShareCreate(_ShareTarget):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    permission: SharePermission = "view"


class LinkShareCreate(_ShareTarget):
    permission: SharePermission = "view"
    password: str | None = Field(default=None, min_length=4)
    expires_in: float | None = Field(default=None, gt=0, description="Hours until the link expires")


class ShareUpdate(BaseModel):
    permission: SharePermission | None = None
    password: str | None = Field(default=None, min_length=4)
    expires_in: float | None = Field(default=None, gt=0)


class LinkAccess(BaseModel):
    password: str | None = None


class ShareRead(BaseModel):
    id: str
    owner_id: str
    folder_id: str | None = None
    asset_id: str | None = None
    share_type: str
    shared_with_user_id: str | None = None
    shared_with_email: str | None = None
    permission: str
    link_token: str | None = None
    has_password: bool = False
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ShareDetails(ShareRead):
    item_name: str
    item_type: str
    mime_type: str | None = None
    size: int | None = None
    owner_name: str | None = None
    shared_with_name: str | None = None
