import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ..core.database import Base
from .lifecycle import TrashableMixin


class Asset(TrashableMixin, Base):
    __tablename__ = "assets"
    __table_args__ = (
        CheckConstraint("size >= 0", name="ck_assets_size_non_negative"),
        Index("idx_assets_owner_folder", "owner_id", "folder_id"),
        Index("idx_assets_owner_state", "owner_id", "state"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    storage_key = Column(Text, nullable=False)
    thumbnail_key = Column(Text, nullable=True)
    folder_id = Column(String(36), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_starred = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    folder = relationship("Folder", back_populates="assets")
