from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..core.config import Settings
from ..core.errors import ErrorCode, ErrorMapping, service_errors
from ..core.responses import success
from ..core.security import CurrentUser, require_user
from ..dependencies import get_app_settings, get_auth_service
from ..schemas.auth import LoginRequest, RegisterRequest, TokenPair, UserRead
from ..services.auth import AuthService

REFRESH_COOKIE = "refresh_token"

router = APIRouter(prefix="/auth", tags=["auth"])

AUTH_ERRORS: ErrorMapping = {
    "EMAIL_EXISTS": (ErrorCode.EMAIL_EXISTS, "Email already registered"),
    "INVALID_CREDENTIALS": (ErrorCode.INVALID_CREDENTIALS, "Invalid email or password"),
    "MISSING_TOKEN": (ErrorCode.UNAUTHORIZED, "No refresh token provided"),
    "INVALID_TOKEN": (ErrorCode.INVALID_TOKEN, "Invalid refresh token"),
    "TOKEN_EXPIRED": (ErrorCode.TOKEN_EXPIRED, "Refresh token expired"),
    "USER_NOT_FOUND": (ErrorCode.USER_NOT_FOUND, "User not found"),
}


def _cookie_path(settings: Settings) -> str:
    return f"{settings.api_prefix}/auth"


def _client(request: Request) -> tuple[str | None, str | None]:
    return request.headers.get("user-agent"), request.client.host if request.client else None


def _session_response(result: dict, settings: Settings, message: str, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    data = {
        "user": UserRead.model_validate(result["user"]),
        "tokens": TokenPair(access_token=result["access_token"], expires_in=result["expires_in"]),
    }
    response = success(data, message, status_code)
    response.set_cookie(
        REFRESH_COOKIE,
        result["refresh_token"],
        max_age=settings.refresh_token_expires_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path=_cookie_path(settings),
    )
    return response


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    user_agent, ip_address = _client(request)
    with service_errors(AUTH_ERRORS, "Registration failed"):
        result = service.register(payload.email, payload.password, payload.name, user_agent, ip_address)
    return _session_response(result, settings, "Registration successful", status.HTTP_201_CREATED)


@router.post("/login")
def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    user_agent, ip_address = _client(request)
    with service_errors(AUTH_ERRORS, "Login failed"):
        result = service.login(payload.email, payload.password, user_agent, ip_address)
    return _session_response(result, settings, "Login successful")


@router.post("/refresh")
def refresh(request: Request, service: AuthService = Depends(get_auth_service), settings: Settings = Depends(get_app_settings)):
    user_agent, ip_address = _client(request)
    with service_errors(AUTH_ERRORS, "Token refresh failed"):
        result = service.refresh(request.cookies.get(REFRESH_COOKIE), user_agent, ip_address)
    return _session_response(result, settings, "Token refreshed")


@router.post("/logout")
def logout(request: Request, service: AuthService = Depends(get_auth_service), settings: Settings = Depends(get_app_settings)):
    with service_errors(AUTH_ERRORS, "Logout failed"):
        service.logout(request.cookies.get(REFRESH_COOKIE))
    response = success(None, "Logged out")
    response.delete_cookie(REFRESH_COOKIE, path=_cookie_path(settings), httponly=True, samesite="lax", secure=settings.cookie_secure)
    return response


@router.get("/me")
def me(user: CurrentUser = Depends(require_user), service: AuthService = Depends(get_auth_service)):
    with service_errors(AUTH_ERRORS, "Failed to load user"):
        account = service.me(user.id)
    return success(UserRead.model_validate(account))
