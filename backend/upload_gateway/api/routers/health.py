from fastapi import APIRouter, Depends

from upload_gateway.api.deps import get_storage
from upload_gateway.schemas import HealthResponse
from upload_gateway.services.storage import StorageBackend

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(storage: StorageBackend = Depends(get_storage)) -> HealthResponse:
    return HealthResponse(storage=storage.scheme)
