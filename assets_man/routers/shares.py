from fastapi import APIRouter, Depends, Query, status

from ..core.errors import ErrorCode, ErrorMapping, service_errors
from ..core.responses import success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_share_service
from ..schemas.asset import AssetRead
from ..schemas.common import ItemType
from ..schemas.folder import BreadcrumbItem, FolderRead
from ..schemas.share import LinkAccess, LinkShareCreate, ShareDetails, ShareRead, ShareUpdate, UserShareCreate
from ..services.shares import ShareService

router = APIRouter(prefix="/shares", tags=["shares"])

SHARE_ERRORS: ErrorMapping = {
    "ITEM_NOT_FOUND": (ErrorCode.NOT_FOUND, "Item not found"),
    "INVALID_TARGET": (ErrorCode.VALIDATION_ERROR, "Exactly one of folder_id or asset_id must be provided"),
    "CANNOT_SHARE_WITH_SELF": (ErrorCode.VALIDATION_ERROR, "You cannot share an item with yourself"),
    "SHARE_ALREADY_EXISTS": (ErrorCode.CONFLICT, "Item is already shared with this user"),
    "SHARE_NOT_FOUND": (ErrorCode.NOT_FOUND, "Share not found"),
}

LINK_ERRORS: ErrorMapping = {
    "LINK_NOT_FOUND": (ErrorCode.NOT_FOUND, "Share link not found or expired"),
    "PASSWORD_REQUIRED": (ErrorCode.UNAUTHORIZED, "Password required"),
    "INVALID_PASSWORD": (ErrorCode.UNAUTHORIZED, "Invalid password"),
    "NOT_AN_ASSET_SHARE": (ErrorCode.VALIDATION_ERROR, "This link does not share a file"),
    "NOT_A_FOLDER_SHARE": (ErrorCode.VALIDATION_ERROR, "This link does not share a folder"),
    "FOLDER_NOT_FOUND": (ErrorCode.NOT_FOUND, "Folder not found"),
}


def _public_details(details: dict) -> dict:
    """Link visitors see the shared item, not who it was shared with or the token."""
    return {
        "item_name": details["item_name"],
        "item_type": details["item_type"],
        "mime_type": details["mime_type"],
        "size": details["size"],
        "owner_name": details["owner_name"],
        "permission": details["permission"],
        "has_password": details["has_password"],
        "expires_at": details["expires_at"],
    }


@router.post("/user", status_code=status.HTTP_201_CREATED)
def create_user_share(payload: UserShareCreate, user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to create share"):
        share = service.create_user_share(user.id, payload.email, payload.folder_id, payload.asset_id, payload.permission)
    return success(ShareRead.model_validate(share), "Share created", status.HTTP_201_CREATED)


@router.post("/link", status_code=status.HTTP_201_CREATED)
def create_link_share(payload: LinkShareCreate, user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to create share link"):
        share = service.create_link_share(
            user.id,
            payload.folder_id,
            payload.asset_id,
            payload.permission,
            payload.password,
            payload.expires_in,
        )
    return success(ShareRead.model_validate(share), "Share link created", status.HTTP_201_CREATED)


@router.get("/mine")
def list_my_shares(user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to list shares"):
        shares = service.list_mine(user.id)
    return success([ShareDetails(**details) for details in shares])


@router.get("/shared-with-me")
def list_shared_with_me(user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to list shares"):
        shares = service.list_shared_with_me(user.id, user.email)
    return success([ShareDetails(**details) for details in shares])


@router.get("/item/{item_type}/{item_id}")
def list_item_shares(
    item_type: ItemType,
    item_id: str,
    user: CurrentUser = Depends(require_user),
    service: ShareService = Depends(get_share_service),
):
    with service_errors(SHARE_ERRORS, "Failed to list shares"):
        shares = service.list_for_item(user.id, item_id, item_type)
    return success([ShareRead.model_validate(share) for share in shares])


@router.get("/access/{item_type}/{item_id}")
def check_access(
    item_type: ItemType,
    item_id: str,
    permission: str = Query("view", pattern="^(view|edit)$"),
    user: CurrentUser = Depends(require_user),
    service: ShareService = Depends(get_share_service),
):
    with service_errors(SHARE_ERRORS, "Failed to check access"):
        allowed = service.check_share_access(user.id, user.email, item_id, item_type, permission)
    return success({"has_access": allowed, "permission": permission})


@router.get("/link/{token}/details")
def link_details(token: str, service: ShareService = Depends(get_share_service)):
    with service_errors(LINK_ERRORS, "Failed to load share link"):
        share = service.resolve_link(token)
    return success(_public_details(service.details(share)))


@router.post("/link/{token}/access")
def access_link(token: str, payload: LinkAccess, service: ShareService = Depends(get_share_service)):
    with service_errors(LINK_ERRORS, "Failed to open share link"):
        share = service.access_link(token, payload.password)
    return success(_public_details(service.details(share)))


@router.post("/link/{token}/download")
def link_download(token: str, payload: LinkAccess, service: ShareService = Depends(get_share_service)):
    with service_errors(LINK_ERRORS, "Failed to create download URL"):
        data = service.link_download(token, payload.password)
    return success(data)


@router.post("/link/{token}/folder")
def link_folder(
    token: str,
    payload: LinkAccess,
    folder_id: str | None = None,
    service: ShareService = Depends(get_share_service),
):
    with service_errors(LINK_ERRORS, "Failed to list shared folder"):
        contents = service.link_folder_contents(token, payload.password, folder_id)
    return success(
        {
            "folder": FolderRead.model_validate(contents["folder"]),
            "breadcrumb": [BreadcrumbItem.model_validate(item) for item in contents["breadcrumb"]],
            "folders": [FolderRead.model_validate(folder) for folder in contents["folders"]],
            "assets": [AssetRead.model_validate(asset) for asset in contents["assets"]],
        }
    )


@router.get("/{share_id}")
def get_share(share_id: str, user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to get share"):
        share = service.get_share(user.id, share_id)
    return success(ShareDetails(**service.details(share)))


@router.patch("/{share_id}")
def update_share(
    share_id: str,
    payload: ShareUpdate,
    user: CurrentUser = Depends(require_user),
    service: ShareService = Depends(get_share_service),
):
    with service_errors(SHARE_ERRORS, "Failed to update share"):
        share = service.update_share(user.id, share_id, payload.model_dump(exclude_unset=True))
    return success(ShareRead.model_validate(share), "Share updated")


@router.delete("/{share_id}")
def delete_share(share_id: str, user: CurrentUser = Depends(require_user), service: ShareService = Depends(get_share_service)):
    with service_errors(SHARE_ERRORS, "Failed to delete share"):
        service.delete_share(user.id, share_id)
    return success(None, "Share deleted")
