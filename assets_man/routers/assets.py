import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from ..core.errors import ApiError, ErrorCode, ErrorMapping, ServiceError, service_errors
from ..core.responses import paginated, success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_asset_service, get_quota, get_share_service, get_thumbnail_pipeline
from ..schemas.asset import (
    AssetCopy,
    AssetRead,
    AssetUpdate,
    BulkDownloadRequest,
    SharedBulkDownloadRequest,
    ThumbnailBatchRequest,
    ThumbnailResultRead,
    UploadRequest,
)
from ..schemas.common import PageQuery, page_params
from ..services.assets import AssetService
from ..services.object_storage import content_disposition
from ..services.quota import QuotaLedger, format_bytes
from ..services.shares import ShareService
from ..services.thumbnails import ThumbnailPipeline, ThumbnailResult

logger = logging.getLogger("assets_man.quota")

router = APIRouter(prefix="/assets", tags=["assets"])

ASSET_ERRORS: ErrorMapping = {
    "ASSET_NOT_FOUND": (ErrorCode.NOT_FOUND, "Asset not found"),
    "FOLDER_NOT_FOUND": (ErrorCode.NOT_FOUND, "Folder not found"),
    "QUOTA_EXCEEDED": (ErrorCode.QUOTA_EXCEEDED, "Insufficient storage quota"),
    "NOTHING_TO_DOWNLOAD": (ErrorCode.NOT_FOUND, "No files found to download"),
}

SHARED_ERRORS: ErrorMapping = {
    "ASSET_NOT_FOUND": (ErrorCode.NOT_FOUND, "Asset not found or not shared with you"),
    "NOTHING_SHARED": (ErrorCode.NOT_FOUND, "No accessible assets found to download"),
}

_ARCHIVE_CHUNK = 64 * 1024


def enforce_upload_quota(
    payload: UploadRequest,
    user: CurrentUser = Depends(require_user),
    quota: QuotaLedger = Depends(get_quota),
) -> UploadRequest:
    """Reject an upload request that would not fit in the remaining quota.

    The check fails open: if it cannot be made the upload goes ahead.
    """
    if payload.size <= 0:
        return payload
    try:
        check = quota.check_available(user.id, payload.size)
    except Exception:
        quota.db.rollback()
        logger.exception("Quota check failed, allowing upload", extra={"user_id": user.id, "size": payload.size})
        return payload
    if not check.available:
        raise ApiError(
            ErrorCode.QUOTA_EXCEEDED,
            f"Insufficient storage quota. Required: {format_bytes(check.required)}, "
            f"Available: {format_bytes(max(0, check.remaining))}",
            {"required": check.required, "remaining": check.remaining},
        )
    return payload


def _read(asset) -> AssetRead:
    return AssetRead.model_validate(asset)


def _stream_archive(archive, disposition: str) -> StreamingResponse:
    def stream():
        try:
            while chunk := archive.read(_ARCHIVE_CHUNK):
                yield chunk
        finally:
            archive.close()

    return StreamingResponse(stream(), media_type="application/zip", headers={"Content-Disposition": disposition})


@router.post("/upload", status_code=status.HTTP_201_CREATED)
def request_upload(
    payload: UploadRequest = Depends(enforce_upload_quota),
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to create upload"):
        result = service.request_upload(user.id, payload.file_name, payload.mime_type, payload.size, payload.folder_id)
    data = {"upload_url": result["upload_url"], "expires_in": result["expires_in"], "asset": _read(result["asset"])}
    return success(data, "Upload URL created", status.HTTP_201_CREATED)


@router.get("/")
def list_assets(
    folder_id: str | None = None,
    paging: PageQuery = Depends(page_params),
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to list assets"):
        items, total = service.list(user.id, paging.offset, paging.limit, folder_id)
    return paginated([_read(item) for item in items], paging.page, paging.limit, total)


@router.get("/starred")
def list_starred(
    paging: PageQuery = Depends(page_params),
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to list starred assets"):
        items, total = service.list_starred(user.id, paging.offset, paging.limit)
    return paginated([_read(item) for item in items], paging.page, paging.limit, total)


@router.get("/search")
def search_assets(
    q: str = Query(min_length=1),
    paging: PageQuery = Depends(page_params),
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to search assets"):
        items, total = service.search(user.id, q, paging.offset, paging.limit)
    return paginated([_read(item) for item in items], paging.page, paging.limit, total)


@router.post("/bulk-download")
def bulk_download(
    payload: BulkDownloadRequest,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    if not payload.asset_ids and not payload.folder_ids:
        raise ApiError(ErrorCode.VALIDATION_ERROR, "Select at least one file or folder")
    with service_errors(ASSET_ERRORS, "Failed to build archive"):
        archive = service.bulk_download(user.id, payload.asset_ids, payload.folder_ids)
    return _stream_archive(archive, 'attachment; filename="download.zip"')


@router.post("/shared-bulk-download")
def shared_bulk_download(
    payload: SharedBulkDownloadRequest,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    shares: ShareService = Depends(get_share_service),
):
    with service_errors(SHARED_ERRORS, "Failed to create download"):
        allowed = [asset_id for asset_id in payload.asset_ids if shares.check_share_access(user.id, user.email, asset_id, "asset")]
        archive, filename = service.shared_bulk_download(user.id, allowed)
    return _stream_archive(archive, content_disposition(filename))


@router.post("/thumbnails/batch")
def generate_thumbnails(
    payload: ThumbnailBatchRequest,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    pipeline: ThumbnailPipeline = Depends(get_thumbnail_pipeline),
):
    results: dict[str, ThumbnailResult] = {}
    owned: list[str] = []
    with service_errors({}, "Failed to generate thumbnails"):
        for asset_id in payload.asset_ids:
            try:
                service.get(user.id, asset_id)
            except ServiceError:
                results[asset_id] = ThumbnailResult(success=False, error="Asset not found")
                continue
            owned.append(asset_id)
    results.update(zip(owned, pipeline.generate_batch(owned)))
    data = [
        {"asset_id": asset_id, **ThumbnailResultRead.model_validate(results[asset_id], from_attributes=True).model_dump()}
        for asset_id in payload.asset_ids
    ]
    return success(data)


@router.post("/thumbnails/regenerate")
def regenerate_thumbnails(
    user: CurrentUser = Depends(require_user),
    pipeline: ThumbnailPipeline = Depends(get_thumbnail_pipeline),
):
    with service_errors({}, "Failed to regenerate thumbnails"):
        summary = pipeline.regenerate_missing(user.id)
    return success(summary)


@router.get("/{asset_id}")
def get_asset(
    asset_id: str,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    pipeline: ThumbnailPipeline = Depends(get_thumbnail_pipeline),
):
    with service_errors(ASSET_ERRORS, "Failed to get asset"):
        asset = service.get(user.id, asset_id)
    return success({**_read(asset).model_dump(), "thumbnail_url": pipeline.get_thumbnail_url(asset)})


@router.get("/{asset_id}/download")
def get_download_url(asset_id: str, user: CurrentUser = Depends(require_user), service: AssetService = Depends(get_asset_service)):
    with service_errors(ASSET_ERRORS, "Failed to create download URL"):
        data = service.get_download_url(user.id, asset_id)
    return success(data)


@router.get("/{asset_id}/shared-download")
def get_shared_download_url(
    asset_id: str,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    shares: ShareService = Depends(get_share_service),
):
    """Download URL for an asset the caller owns or that was shared with them."""
    with service_errors(SHARED_ERRORS, "Failed to generate download URL"):
        if not shares.check_share_access(user.id, user.email, asset_id, "asset"):
            raise ServiceError("ASSET_NOT_FOUND")
        data = service.get_shared_download_url(asset_id)
    return success(data)


@router.patch("/{asset_id}")
def update_asset(
    asset_id: str,
    payload: AssetUpdate,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to update asset"):
        asset = service.update(user.id, asset_id, payload.model_dump(exclude_unset=True))
    return success(_read(asset), "Asset updated")


@router.post("/{asset_id}/star")
def toggle_star(asset_id: str, user: CurrentUser = Depends(require_user), service: AssetService = Depends(get_asset_service)):
    with service_errors(ASSET_ERRORS, "Failed to update asset"):
        asset = service.toggle_star(user.id, asset_id)
    return success(_read(asset), "Asset starred" if asset.is_starred else "Asset unstarred")


@router.post("/{asset_id}/copy", status_code=status.HTTP_201_CREATED)
def copy_asset(
    asset_id: str,
    payload: AssetCopy,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
):
    with service_errors(ASSET_ERRORS, "Failed to copy asset"):
        asset = service.copy(user.id, asset_id, payload.target_folder_id)
    return success(_read(asset), "Asset copied", status.HTTP_201_CREATED)


@router.delete("/{asset_id}")
def trash_asset(asset_id: str, user: CurrentUser = Depends(require_user), service: AssetService = Depends(get_asset_service)):
    with service_errors(ASSET_ERRORS, "Failed to move asset to trash"):
        service.trash(user.id, asset_id)
    return success(None, "Asset moved to trash")


@router.post("/{asset_id}/restore")
def restore_asset(asset_id: str, user: CurrentUser = Depends(require_user), service: AssetService = Depends(get_asset_service)):
    with service_errors(ASSET_ERRORS, "Failed to restore asset"):
        asset = service.restore(user.id, asset_id)
    return success(_read(asset), "Asset restored")


@router.delete("/{asset_id}/permanent")
def delete_asset(asset_id: str, user: CurrentUser = Depends(require_user), service: AssetService = Depends(get_asset_service)):
    with service_errors(ASSET_ERRORS, "Failed to delete asset"):
        service.permanently_delete(user.id, asset_id)
    return success(None, "Asset permanently deleted")


@router.post("/{asset_id}/thumbnail")
def generate_thumbnail(
    asset_id: str,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    pipeline: ThumbnailPipeline = Depends(get_thumbnail_pipeline),
):
    with service_errors(ASSET_ERRORS, "Failed to generate thumbnail"):
        service.get(user.id, asset_id)
    result = pipeline.generate_thumbnail(asset_id)
    return success(ThumbnailResultRead.model_validate(result, from_attributes=True))


@router.get("/{asset_id}/thumbnail")
def get_thumbnail_url(
    asset_id: str,
    user: CurrentUser = Depends(require_user),
    service: AssetService = Depends(get_asset_service),
    pipeline: ThumbnailPipeline = Depends(get_thumbnail_pipeline),
):
    with service_errors(ASSET_ERRORS, "Failed to get thumbnail"):
        asset = service.get(user.id, asset_id)
    url = pipeline.get_thumbnail_url(asset)
    if url is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Thumbnail not available")
    return success({"url": url})
