import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        protected_namespaces=(),
    )

    env: Literal["local", "prod", "test"] = Field(default="local", alias="ENV")
    debug: bool = Field(default=True, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    storage_backend: Literal["local", "s3"] = Field(default="local", alias="STORAGE_BACKEND")

    local_storage_dir: str = Field(default="public/uploads", alias="LOCAL_STORAGE_DIR")
    local_public_url_prefix: str = Field(default="/uploads", alias="LOCAL_PUBLIC_URL_PREFIX")

    s3_endpoint: HttpUrl | None = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_access_key: str = Field(default="change-me", alias="S3_ACCESS_KEY")
    s3_secret_key: str = Field(default="change-me", alias="S3_SECRET_KEY")
    s3_region: str | None = Field(default=None, alias="S3_REGION")
    s3_bucket_uploads: str = Field(default="uploads-bucket", alias="S3_BUCKET_UPLOADS")
    s3_key_prefix: str = Field(default="uploads/", alias="S3_KEY_PREFIX")
    s3_public_url_template: str = Field(
        default="https://storage.googleapis.com/{bucket}/{key}",
        alias="S3_PUBLIC_URL_TEMPLATE",
    )
    # When false a failed public-read ACL is only logged and the URL is still returned.
    s3_require_public_read: bool = Field(default=False, alias="S3_REQUIRE_PUBLIC_READ")

    upload_max_bytes: int = Field(default=20 * 1024 * 1024, gt=0, alias="UPLOAD_MAX_BYTES")
    upload_allowed_types: Annotated[list[str], NoDecode] = Field(
        default=["image/jpeg", "image/png", "image/webp", "image/svg+xml"],
        alias="UPLOAD_ALLOWED_TYPES",
    )
    upload_field_name: str = Field(default="file", min_length=1, alias="UPLOAD_FIELD_NAME")

    @field_validator("upload_allowed_types", mode="before")
    @classmethod
    def _split_allowed_types(cls, value):
        # Accepts a JSON list or a comma-separated string
        if isinstance(value, str):
            if value.lstrip().startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
