from fastapi import Request

from upload_gateway.core.config import get_settings
from upload_gateway.services.storage import StorageBackend, get_storage_backend
from upload_gateway.services.uploads import UploadService


def get_storage(request: Request) -> StorageBackend:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        storage = get_storage_backend()
        request.app.state.storage = storage
    return storage


def get_upload_service(request: Request) -> UploadService:
    service = getattr(request.app.state, "upload_service", None)
    if service is None:
        service = UploadService.from_settings(get_settings(), get_storage(request))
        request.app.state.upload_service = service
    return service
