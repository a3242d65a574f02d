from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from upload_gateway.api.routers import health as health_router
from upload_gateway.api.routers import uploads as uploads_router
from upload_gateway.core.config import get_settings
from upload_gateway.core.logging import setup_logging
from upload_gateway.services.storage import get_storage_backend
from upload_gateway.services.uploads import UploadService


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    storage = get_storage_backend()
    app.state.storage = storage
    app.state.upload_service = UploadService.from_settings(settings, storage)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)
    app = FastAPI(
        debug=settings.debug,
        title="Upload Gateway API",
        lifespan=lifespan,
    )

    app.include_router(uploads_router.router)
    app.include_router(health_router.router)

    if settings.storage_backend == "local":
        app.mount(
            settings.local_public_url_prefix,
            StaticFiles(directory=settings.local_storage_dir, check_dir=False),
            name="uploads",
        )

    return app


app = create_app()
