import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final
from urllib.parse import quote

import boto3
from botocore.client import BaseClient, Config
from botocore.exceptions import BotoCoreError, ClientError

from upload_gateway.core.config import Settings, get_settings
from upload_gateway.core.errors import StorageVisibilityWarning, StorageWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageLocation:
    key: str
    backend: str
    path: Path | None = None
    bucket: str | None = None
    object_key: str | None = None
    public: bool = True


class StorageBackend(ABC):
    """Writes uploaded bytes under a generated key and derives their public URL."""

    scheme: str

    def startup(self) -> None:
        """Prepare the backend. Must be safe to call more than once."""

    @abstractmethod
    async def write(self, key: str, data: bytes, content_type: str) -> StorageLocation: ...

    @abstractmethod
    def resolve_public_url(self, location: StorageLocation) -> str: ...


class LocalStorageBackend(StorageBackend):
    """Stores files in a directory that is served statically."""

    scheme: Final[str] = "local"

    def __init__(self, base_dir: str | Path, public_url_prefix: str = "/uploads") -> None:
        self.base_path = Path(base_dir).resolve()
        self.public_url_prefix = public_url_prefix.rstrip("/")

    def startup(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_path(self, key: str) -> Path:
        candidate = (self.base_path / key).resolve()
        if candidate.parent != self.base_path:
            raise StorageWriteError("Invalid storage key")
        return candidate

    async def write(self, key: str, data: bytes, content_type: str) -> StorageLocation:
        target = self._key_path(key)

        def _write() -> None:
            fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=".upload-", suffix=".part")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.exception("Failed to write %s to %s", key, self.base_path)
            raise StorageWriteError(f"Failed to store file: {exc.strerror or exc}") from exc
        return StorageLocation(key=key, backend=self.scheme, path=target)

    def resolve_public_url(self, location: StorageLocation) -> str:
        return f"{self.public_url_prefix}/{quote(location.key)}"


class S3StorageBackend(StorageBackend):
    """S3-compatible object storage; objects are made public-read after upload."""

    scheme: Final[str] = "s3"

    def __init__(
        self,
        settings: Settings,
        client: BaseClient | None = None,
    ) -> None:
        self.settings = settings
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=str(settings.s3_endpoint) if settings.s3_endpoint else None,
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
                region_name=settings.s3_region,
                config=Config(signature_version="s3v4"),
            )
        self.client = client
        self.bucket = settings.s3_bucket_uploads
        self.key_prefix = settings.s3_key_prefix
        self.public_url_template = settings.s3_public_url_template
        self.require_public_read = settings.s3_require_public_read

    def object_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def write(self, key: str, data: bytes, content_type: str) -> StorageLocation:
        object_key = self.object_key(key)

        def _upload() -> None:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )

        try:
            await asyncio.to_thread(_upload)
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Upload of %s to bucket %s failed", object_key, self.bucket)
            raise StorageWriteError(str(exc)) from exc

        public = True
        try:
            await self._make_public(object_key)
        except StorageVisibilityWarning as warning:
            public = False
            logger.warning("Object %s stored but not public: %s", object_key, warning)
            if self.require_public_read:
                await self._discard(object_key)
                raise StorageWriteError(f"Uploaded file could not be made public: {warning}") from warning

        return StorageLocation(
            key=key,
            backend=self.scheme,
            bucket=self.bucket,
            object_key=object_key,
            public=public,
        )

    async def _make_public(self, object_key: str) -> None:
        def _acl() -> None:
            self.client.put_object_acl(Bucket=self.bucket, Key=object_key, ACL="public-read")

        try:
            await asyncio.to_thread(_acl)
        except (ClientError, BotoCoreError) as exc:
            raise StorageVisibilityWarning(str(exc)) from exc

    async def _discard(self, object_key: str) -> None:
        def _delete() -> None:
            self.client.delete_object(Bucket=self.bucket, Key=object_key)

        try:
            await asyncio.to_thread(_delete)
        except (ClientError, BotoCoreError):
            logger.exception("Failed to remove non-public object %s", object_key)

    def resolve_public_url(self, location: StorageLocation) -> str:
        object_key = location.object_key or self.object_key(location.key)
        return self.public_url_template.format(
            bucket=location.bucket or self.bucket,
            key=quote(object_key),
        )


def build_storage_backend(settings: Settings) -> StorageBackend:
    if settings.storage_backend == "s3":
        return S3StorageBackend(settings)
    return LocalStorageBackend(settings.local_storage_dir, settings.local_public_url_prefix)


@lru_cache
def get_storage_backend() -> StorageBackend:
    backend = build_storage_backend(get_settings())
    backend.startup()
    logger.info("Storage backend ready: %s", backend.scheme)
    return backend
