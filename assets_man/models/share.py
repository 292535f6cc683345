import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ..core.database import Base


class Share(Base):
    __tablename__ = "shares"
    __table_args__ = (
        CheckConstraint(
            "(folder_id IS NULL) <> (asset_id IS NULL)",
            name="ck_shares_exactly_one_item",
        ),
        Index("idx_shares_asset_user", "asset_id", "shared_with_user_id"),
        Index("idx_shares_folder_user", "folder_id", "shared_with_user_id"),
        Index("idx_shares_owner_type", "owner_id", "share_type"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    asset_id = Column(String(36), ForeignKey("assets.id", ondelete="CASCADE"), nullable=True)
    share_type = Column(String(8), nullable=False)
    shared_with_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    shared_with_email = Column(String(320), nullable=True)
    permission = Column(String(8), nullable=False, default="view")
    link_token = Column(String(128), nullable=True, unique=True)
    link_password = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    shared_with_user = relationship("User", foreign_keys=[shared_with_user_id])
    folder = relationship("Folder")
    asset = relationship("Asset")

    @property
    def item_type(self) -> str:
        return "folder" if self.folder_id else "asset"

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or datetime.utcnow()) > self.expires_at

    @property
    def has_password(self) -> bool:
        return bool(self.link_password)
