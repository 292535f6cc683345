from fastapi import APIRouter, Depends

from ..core.errors import service_errors
from ..core.responses import success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_quota
from ..schemas.storage import StorageStatsRead
from ..services.quota import QuotaLedger

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/stats")
def storage_stats(user: CurrentUser = Depends(require_user), quota: QuotaLedger = Depends(get_quota)):
    """Current usage and limit.

    Trashed files keep counting towards ``used_storage`` until they are
    permanently deleted. A recalculation counts active files only, so it lowers
    the figure while anything sits in the trash.
    """
    with service_errors({}, "Failed to load storage stats"):
        stats = quota.get_stats(user.id)
    return success(StorageStatsRead.model_validate(stats, from_attributes=True))


@router.post("/recalculate")
def recalculate(user: CurrentUser = Depends(require_user), quota: QuotaLedger = Depends(get_quota)):
    """Reset ``used_storage`` to the total size of the caller's active files."""
    with service_errors({}, "Failed to recalculate storage"):
        quota.recalculate(user.id)
        stats = quota.get_stats(user.id)
    return success(StorageStatsRead.model_validate(stats, from_attributes=True), "Storage usage recalculated")
