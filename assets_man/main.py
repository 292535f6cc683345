from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.database import Database
from .core.errors import register_exception_handlers
from .core.logger import configure_logging, get_logger
from .routers import assets, auth, folders, health, recent, shares, trash
from .routers import storage as storage_stats
from .services.object_storage import ObjectStorage, create_object_storage
from .services.service_validator import log_config, validate_services
from .services.thumbnails import ThumbnailPipeline, extract_video_frame


def create_app(
    settings: Settings | None = None,
    storage: ObjectStorage | None = None,
    database: Database | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("app")

    database = database or Database(settings.database_url)
    storage = storage or create_object_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_config(settings, logger)
        if settings.validate_services_on_startup:
            results = validate_services(settings, database, storage, get_logger("validation"))
            if settings.environment == "production" and not all(result.success for result in results):
                raise RuntimeError("Service validation failed")
        yield
        database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.storage = storage
    app.state.thumbnails = ThumbnailPipeline(
        database.session_factory,
        storage,
        get_logger("thumbnails"),
        frame_extractor=partial(extract_video_frame, ffmpeg_path=settings.ffmpeg_path),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(assets.router, prefix=settings.api_prefix)
    app.include_router(folders.router, prefix=settings.api_prefix)
    app.include_router(trash.router, prefix=settings.api_prefix)
    app.include_router(shares.router, prefix=settings.api_prefix)
    app.include_router(recent.router, prefix=settings.api_prefix)
    app.include_router(storage_stats.router, prefix=settings.api_prefix)
    return app


app = create_app()
