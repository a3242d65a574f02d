from typing import Literal

from pydantic import BaseModel, Field


class UploadSuccess(BaseModel):
    success: Literal[True] = True
    url: str
    filename: str
    size: int = Field(..., ge=0)
    mimetype: str


class UploadFailure(BaseModel):
    success: Literal[False] = False
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    storage: str
