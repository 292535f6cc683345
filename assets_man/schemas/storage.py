from pydantic import BaseModel


class StorageStatsRead(BaseModel):
    used_storage: int
    quota_limit: int
    used_percentage: float
    remaining_storage: int
    formatted_used: str
    formatted_limit: str
    formatted_remaining: str
