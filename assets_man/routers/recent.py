from fastapi import APIRouter, Depends, Query, status

from ..core.errors import ErrorCode, ErrorMapping, service_errors
from ..core.responses import paginated, success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_recent_service
from ..schemas.common import ItemType, PageQuery, recent_page_params
from ..schemas.recent import RecentItemRead, RecordAccess
from ..services.recent import RecentService

router = APIRouter(prefix="/recent", tags=["recent"])

RECENT_ERRORS: ErrorMapping = {
    "ASSET_NOT_FOUND": (ErrorCode.NOT_FOUND, "Asset not found"),
    "FOLDER_NOT_FOUND": (ErrorCode.NOT_FOUND, "Folder not found"),
    "RECENT_NOT_FOUND": (ErrorCode.NOT_FOUND, "Item not found in recent activity"),
}


@router.post("/", status_code=status.HTTP_201_CREATED)
def record_access(payload: RecordAccess, user: CurrentUser = Depends(require_user), service: RecentService = Depends(get_recent_service)):
    with service_errors(RECENT_ERRORS, "Failed to record access"):
        entry = service.record_access(user.id, payload.item_id, payload.item_type)
    return success({"id": entry.id, "item_type": entry.item_type, "accessed_at": entry.accessed_at}, status_code=status.HTTP_201_CREATED)


@router.get("/")
def list_recent(
    paging: PageQuery = Depends(recent_page_params),
    user: CurrentUser = Depends(require_user),
    service: RecentService = Depends(get_recent_service),
):
    with service_errors(RECENT_ERRORS, "Failed to list recent items"):
        items, total = service.list_recent(user.id, paging.offset, paging.limit)
    return paginated([RecentItemRead.model_validate(item) for item in items], paging.page, paging.limit, total)


@router.delete("/")
def clear_recent(user: CurrentUser = Depends(require_user), service: RecentService = Depends(get_recent_service)):
    with service_errors(RECENT_ERRORS, "Failed to clear recent items"):
        removed = service.clear(user.id)
    return success({"deleted": removed}, "Recent activity cleared")


@router.delete("/{item_id}")
def remove_recent(
    item_id: str,
    type: ItemType = Query(...),
    user: CurrentUser = Depends(require_user),
    service: RecentService = Depends(get_recent_service),
):
    with service_errors(RECENT_ERRORS, "Failed to remove recent item"):
        service.remove(user.id, item_id, type)
    return success(None, "Item removed from recent activity")
