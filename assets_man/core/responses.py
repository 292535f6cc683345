import math
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

PAGE_DEFAULT = 1
LIMIT_DEFAULT = 20
LIMIT_MAX = 100


def success(data: Any = None, message: str | None = None, status_code: int = 200) -> JSONResponse:
    body: dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code)


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def paginated(items: list[Any], page: int, limit: int, total: int, status_code: int = 200) -> JSONResponse:
    body = {
        "success": True,
        "data": jsonable_encoder(items),
        "pagination": pagination_meta(page, limit, total),
    }
    return JSONResponse(body, status_code=status_code)


def error_response(code: str, message: str, status_code: int = 400, details: dict[str, Any] | None = None) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = jsonable_encoder(details)
    return JSONResponse({"success": False, "error": error}, status_code=status_code)
