from fastapi import APIRouter, Depends, Query, status

from ..core.errors import ErrorCode, ErrorMapping, service_errors
from ..core.responses import paginated, success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_folder_service
from ..schemas.asset import AssetRead
from ..schemas.common import PageQuery, page_params
from ..schemas.folder import BreadcrumbItem, FolderCopy, FolderCreate, FolderMove, FolderRead, FolderUpdate
from ..services.folders import FolderService

router = APIRouter(prefix="/folders", tags=["folders"])

FOLDER_ERRORS: ErrorMapping = {
    "FOLDER_NOT_FOUND": (ErrorCode.NOT_FOUND, "Folder not found"),
    "PARENT_NOT_FOUND": (ErrorCode.NOT_FOUND, "Parent folder not found"),
    "INVALID_MOVE": (ErrorCode.VALIDATION_ERROR, "Cannot move a folder into itself or one of its subfolders"),
    "QUOTA_EXCEEDED": (ErrorCode.QUOTA_EXCEEDED, "Insufficient storage quota"),
}


def _read(folder) -> FolderRead:
    return FolderRead.model_validate(folder)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_folder(payload: FolderCreate, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to create folder"):
        folder = service.create(user.id, payload.name, payload.parent_id)
    return success(_read(folder), "Folder created", status.HTTP_201_CREATED)


@router.get("/")
def list_folders(user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to list folders"):
        folders = service.list_all(user.id)
    return success([_read(folder) for folder in folders])


@router.get("/contents")
def root_contents(user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to get folder contents"):
        contents = service.contents(user.id, None)
    return success(
        {
            "folders": [_read(folder) for folder in contents["folders"]],
            "assets": [AssetRead.model_validate(asset) for asset in contents["assets"]],
        }
    )


@router.get("/starred")
def list_starred(user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to list starred folders"):
        folders = service.list_starred(user.id)
    return success([_read(folder) for folder in folders])


@router.get("/search")
def search_folders(
    q: str = Query(min_length=1),
    paging: PageQuery = Depends(page_params),
    user: CurrentUser = Depends(require_user),
    service: FolderService = Depends(get_folder_service),
):
    with service_errors(FOLDER_ERRORS, "Failed to search folders"):
        items, total = service.search(user.id, q, paging.offset, paging.limit)
    return paginated([_read(item) for item in items], paging.page, paging.limit, total)


@router.get("/{folder_id}")
def get_folder(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to get folder"):
        folder, path = service.get(user.id, folder_id)
    breadcrumb = [BreadcrumbItem.model_validate(item) for item in path]
    return success({**_read(folder).model_dump(), "breadcrumb": breadcrumb})


@router.get("/{folder_id}/contents")
def folder_contents(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to get folder contents"):
        contents = service.contents(user.id, folder_id)
    return success(
        {
            "folders": [_read(folder) for folder in contents["folders"]],
            "assets": [AssetRead.model_validate(asset) for asset in contents["assets"]],
        }
    )


@router.patch("/{folder_id}")
def update_folder(
    folder_id: str,
    payload: FolderUpdate,
    user: CurrentUser = Depends(require_user),
    service: FolderService = Depends(get_folder_service),
):
    with service_errors(FOLDER_ERRORS, "Failed to update folder"):
        folder = service.update(user.id, folder_id, payload.name)
    return success(_read(folder), "Folder updated")


@router.post("/{folder_id}/star")
def toggle_star(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to update folder"):
        folder = service.toggle_star(user.id, folder_id)
    return success(_read(folder), "Folder starred" if folder.is_starred else "Folder unstarred")


@router.post("/{folder_id}/move")
def move_folder(
    folder_id: str,
    payload: FolderMove,
    user: CurrentUser = Depends(require_user),
    service: FolderService = Depends(get_folder_service),
):
    with service_errors(FOLDER_ERRORS, "Failed to move folder"):
        folder = service.move(user.id, folder_id, payload.parent_id)
    return success(_read(folder), "Folder moved")


@router.post("/{folder_id}/copy", status_code=status.HTTP_201_CREATED)
def copy_folder(
    folder_id: str,
    payload: FolderCopy,
    user: CurrentUser = Depends(require_user),
    service: FolderService = Depends(get_folder_service),
):
    with service_errors(FOLDER_ERRORS, "Failed to copy folder"):
        folder = service.copy(user.id, folder_id, payload.target_parent_id)
    return success(_read(folder), "Folder copied", status.HTTP_201_CREATED)


@router.delete("/{folder_id}")
def trash_folder(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to move folder to trash"):
        service.trash(user.id, folder_id)
    return success(None, "Folder moved to trash")


@router.post("/{folder_id}/restore")
def restore_folder(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to restore folder"):
        folder = service.restore(user.id, folder_id)
    return success(_read(folder), "Folder restored")


@router.delete("/{folder_id}/permanent")
def delete_folder(folder_id: str, user: CurrentUser = Depends(require_user), service: FolderService = Depends(get_folder_service)):
    with service_errors(FOLDER_ERRORS, "Failed to delete folder"):
        counts = service.permanently_delete(user.id, folder_id)
    return success(counts, "Folder permanently deleted")
