import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String

from ..core.config import DEFAULT_STORAGE_QUOTA
from ..core.database import Base


class StorageQuota(Base):
    __tablename__ = "storage_quotas"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    quota_limit = Column(BigInteger, nullable=False, default=DEFAULT_STORAGE_QUOTA)
    used_storage = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
