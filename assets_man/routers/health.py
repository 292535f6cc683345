from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..core.responses import success

router = APIRouter(tags=["health"])


@router.get("/")
def api_info(request: Request):
    settings = request.app.state.settings
    return success(
        {
            "name": settings.app_name,
            "version": request.app.version,
            "docs": request.app.docs_url,
            "api_prefix": settings.api_prefix,
        }
    )


@router.get("/health")
def health():
    return success({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})
