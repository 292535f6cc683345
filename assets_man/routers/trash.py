from fastapi import APIRouter, Depends, Query

from ..core.errors import ErrorCode, ErrorMapping, service_errors
from ..core.responses import paginated, success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_asset_service, get_folder_service
from ..schemas.asset import AssetRead
from ..schemas.common import ItemType, PageQuery, page_params
from ..schemas.folder import FolderRead
from ..services.assets import AssetService
from ..services.folders import FolderService

router = APIRouter(prefix="/trash", tags=["trash"])

TRASH_ERRORS: ErrorMapping = {
    "ASSET_NOT_FOUND": (ErrorCode.NOT_FOUND, "Item not found in trash"),
    "FOLDER_NOT_FOUND": (ErrorCode.NOT_FOUND, "Item not found in trash"),
}


@router.get("/")
def list_trash(
    paging: PageQuery = Depends(page_params),
    user: CurrentUser = Depends(require_user),
    assets: AssetService = Depends(get_asset_service),
    folders: FolderService = Depends(get_folder_service),
):
    with service_errors(TRASH_ERRORS, "Failed to list trash"):
        items = [
            {**FolderRead.model_validate(folder).model_dump(), "item_type": "folder"}
            for folder in folders.trashed_query(user.id).all()
        ]
        items.extend(
            {**AssetRead.model_validate(asset).model_dump(), "item_type": "asset"}
            for asset in assets.trashed_query(user.id).all()
        )
    items.sort(key=lambda item: item["trashed_at"], reverse=True)
    page = items[paging.offset:paging.offset + paging.limit]
    return paginated(page, paging.page, paging.limit, len(items))


@router.post("/{item_id}/restore")
def restore_item(
    item_id: str,
    type: ItemType = Query(...),
    user: CurrentUser = Depends(require_user),
    assets: AssetService = Depends(get_asset_service),
    folders: FolderService = Depends(get_folder_service),
):
    with service_errors(TRASH_ERRORS, "Failed to restore item"):
        if type == "asset":
            data = AssetRead.model_validate(assets.restore(user.id, item_id))
        else:
            data = FolderRead.model_validate(folders.restore(user.id, item_id))
    return success(data, "Item restored")


@router.delete("/{item_id}")
def delete_item(
    item_id: str,
    type: ItemType = Query(...),
    user: CurrentUser = Depends(require_user),
    assets: AssetService = Depends(get_asset_service),
    folders: FolderService = Depends(get_folder_service),
):
    with service_errors(TRASH_ERRORS, "Failed to delete item"):
        if type == "asset":
            assets.permanently_delete(user.id, item_id)
        else:
            folders.permanently_delete(user.id, item_id)
    return success(None, "Item permanently deleted")


@router.delete("/")
def empty_trash(
    user: CurrentUser = Depends(require_user),
    assets: AssetService = Depends(get_asset_service),
    folders: FolderService = Depends(get_folder_service),
):
    with service_errors(TRASH_ERRORS, "Failed to empty trash"):
        deleted_assets = assets.empty_trash(user.id)
        deleted_folders = folders.empty_trash(user.id)
    data = {"deleted_assets": deleted_assets, "deleted_folders": deleted_folders, "total": deleted_assets + deleted_folders}
    return success(data, "Trash emptied")
