from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from upload_gateway.api.deps import get_upload_service
from upload_gateway.api.responses import compose_response, method_not_allowed
from upload_gateway.schemas import UploadFailure, UploadSuccess
from upload_gateway.services.uploads import UploadService

router = APIRouter(prefix="/api", tags=["uploads"])

_MULTIPART_BODY = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {"file": {"type": "string", "format": "binary"}},
                    "required": ["file"],
                }
            }
        },
    }
}


@router.post(
    "/upload",
    name="upload_file",
    response_model=UploadSuccess,
    responses={400: {"model": UploadFailure}, 500: {"model": UploadFailure}},
    openapi_extra=_MULTIPART_BODY,
)
async def upload_file(
    request: Request,
    service: UploadService = Depends(get_upload_service),
) -> JSONResponse:
    # The body is read from the raw stream so validation runs while it arrives.
    result = await service.process(request.headers.get("content-type"), request.stream())
    return compose_response(result)


@router.api_route(
    "/upload",
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def upload_method_not_allowed() -> JSONResponse:
    return method_not_allowed()
