"""
Startup checks for the database and the storage bucket.

Vendor errors are reduced to short operator-facing messages by looking for the
usual signatures (HTTP status, error code names, resolver failures) in the
error text, so the same rules cover boto3 and google-cloud-storage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Settings
from ..core.database import Database
from .object_storage import ObjectStorage, StorageError

_NOT_FOUND_SIGNS = ("404", "NoSuchBucket", "NotFound", "does not exist")
_DENIED_SIGNS = ("403", "AccessDenied", "Forbidden")
_UNREACHABLE_SIGNS = ("EndpointConnectionError", "Could not connect", "getaddrinfo", "ENOTFOUND", "Name or service not known")
_NO_CREDENTIALS_SIGNS = ("NoCredentialsError", "DefaultCredentialsError", "Unable to locate credentials")


@dataclass
class ValidationResult:
    name: str
    success: bool
    message: str
    details: dict = field(default_factory=dict)


def _error_text(exc: BaseException) -> str:
    parts = []
    current: BaseException | None = exc
    while current is not None:
        parts.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return " | ".join(parts)


def describe_storage_failure(exc: BaseException, provider: str, bucket: str) -> str:
    label = provider.upper()
    text = _error_text(exc)
    if any(sign in text for sign in _DENIED_SIGNS):
        return f'Access denied to {label} bucket "{bucket}". Check your credentials.'
    if any(sign in text for sign in _NOT_FOUND_SIGNS):
        return f'{label} bucket "{bucket}" not found'
    if any(sign in text for sign in _UNREACHABLE_SIGNS):
        return f"Cannot reach {label} endpoint. Check your network connection."
    if any(sign in text for sign in _NO_CREDENTIALS_SIGNS):
        return f"{label} credentials not configured."
    return f"{label} bucket validation failed: {exc}"


def validate_database(database: Database) -> ValidationResult:
    try:
        database.ping()
    except SQLAlchemyError as exc:
        return ValidationResult("database", False, f"Database connection failed: {exc.__class__.__name__}")
    return ValidationResult("database", True, "Database connection successful")


def validate_storage(storage: ObjectStorage, provider: str) -> ValidationResult:
    details = {"bucket": storage.bucket, "provider": provider}
    try:
        storage.check_bucket()
    except StorageError as exc:
        return ValidationResult("storage", False, describe_storage_failure(exc, provider, storage.bucket), details)
    return ValidationResult("storage", True, f"{provider.upper()} bucket connection successful", details)


def log_config(settings: Settings, logger: logging.Logger) -> None:
    # secrets and keys stay out of the log
    logger.info(
        "Configuration",
        extra={
            "environment": settings.environment,
            "storage_provider": settings.storage_provider,
            "storage_bucket": settings.storage_bucket,
            "storage_region": settings.storage_region or "default",
            "allowed_origins": ",".join(settings.allowed_origins),
        },
    )


def validate_services(
    settings: Settings,
    database: Database,
    storage: ObjectStorage,
    logger: logging.Logger | None = None,
) -> list[ValidationResult]:
    logger = logger or logging.getLogger("assets_man.validation")
    results = [validate_database(database), validate_storage(storage, settings.storage_provider)]
    for result in results:
        level = logging.INFO if result.success else logging.ERROR
        logger.log(level, result.message, extra={"service": result.name, **result.details})
    if all(result.success for result in results):
        logger.info("All services validated successfully")
    else:
        logger.error("Some services failed validation")
    return results
