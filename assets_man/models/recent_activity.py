import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from ..core.database import Base


class RecentActivity(Base):
    __tablename__ = "recent_activity"
    __table_args__ = (
        Index("idx_recent_activity_user_accessed", "user_id", "accessed_at"),
        Index("idx_recent_activity_user_asset", "user_id", "asset_id"),
        Index("idx_recent_activity_user_folder", "user_id", "folder_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    asset_id = Column(String(36), ForeignKey("assets.id", ondelete="CASCADE"), nullable=True)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    item_type = Column(String(16), nullable=False)
    accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    asset = relationship("Asset")
    folder = relationship("Folder")
