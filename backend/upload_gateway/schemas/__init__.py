from upload_gateway.schemas.upload import HealthResponse, UploadFailure, UploadSuccess

__all__ = [
    "UploadSuccess",
    "UploadFailure",
    "HealthResponse",
]
