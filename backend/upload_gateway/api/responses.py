from fastapi import status
from fastapi.responses import JSONResponse

from upload_gateway.core.errors import UploadError
from upload_gateway.schemas import UploadFailure, UploadSuccess
from upload_gateway.services.uploads import UploadResult

GENERIC_FAILURE_MESSAGE = "Upload failed"


def compose_response(result: UploadResult) -> JSONResponse:
    """Translate a pipeline outcome into the public JSON envelope.

    Internal exception types never leave this function: client errors map to
    400, storage errors to 500 with their message, anything else to a generic
    500.
    """
    if result.stored is not None:
        body = UploadSuccess(
            url=result.stored.url,
            filename=result.stored.key,
            size=result.stored.size,
            mimetype=result.stored.content_type,
        )
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())

    error = result.error
    if isinstance(error, UploadError):
        status_code = error.status_code
        message = error.message
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = GENERIC_FAILURE_MESSAGE
    return JSONResponse(
        status_code=status_code,
        content=UploadFailure(error=message).model_dump(),
    )


def method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content=UploadFailure(error="Method Not Allowed").model_dump(),
        headers={"Allow": "POST"},
    )
