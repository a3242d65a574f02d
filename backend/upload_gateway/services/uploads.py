from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from enum import Enum

from upload_gateway.core.config import Settings
from upload_gateway.core.errors import MissingFileError, UploadError
from upload_gateway.services.keys import generate_storage_key
from upload_gateway.services.multipart import MultipartStreamParser, UploadedPart
from upload_gateway.services.policy import UploadPolicy
from upload_gateway.services.storage import StorageBackend

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    VALIDATING = "validating"
    WRITING = "writing"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class StoredUpload:
    key: str
    url: str
    size: int
    content_type: str


@dataclass(frozen=True)
class UploadResult:
    stored: StoredUpload | None = None
    error: Exception | None = None

    def __post_init__(self) -> None:
        if (self.stored is None) == (self.error is None):
            raise ValueError("UploadResult needs exactly one of stored or error")

    @property
    def success(self) -> bool:
        return self.stored is not None


class UploadService:
    def __init__(
        self,
        storage: StorageBackend,
        policy: UploadPolicy,
        field_name: str = "file",
    ) -> None:
        self.storage = storage
        self.policy = policy
        self.field_name = field_name

    @classmethod
    def from_settings(cls, settings: Settings, storage: StorageBackend) -> UploadService:
        return cls(storage, UploadPolicy.from_settings(settings), settings.upload_field_name)

    async def handle(
        self,
        content_type: str | None,
        stream: AsyncIterable[bytes],
    ) -> StoredUpload:
        state = self._enter(UploadState.IDLE)
        try:
            state = self._enter(UploadState.PARSING)
            parser = MultipartStreamParser(content_type, self.policy, self.field_name)

            state = self._enter(UploadState.VALIDATING)
            upload = await self._receive(parser, stream)

            state = self._enter(UploadState.WRITING)
            key = generate_storage_key(upload.filename)
            location = await self.storage.write(key, upload.payload, upload.content_type)
            url = self.storage.resolve_public_url(location)
        except UploadError as exc:
            logger.info("Upload %s while %s: %s", UploadState.FAILED.value, state.value, exc.message)
            raise
        except Exception:
            logger.debug("Upload %s while %s", UploadState.FAILED.value, state.value)
            raise

        state = UploadState.RESOLVED
        logger.info(
            "Upload %s: %s (%d bytes, %s)", state.value, key, upload.size, upload.content_type
        )
        return StoredUpload(key=key, url=url, size=upload.size, content_type=upload.content_type)

    @staticmethod
    def _enter(state: UploadState) -> UploadState:
        logger.debug("Upload state -> %s", state.value)
        return state

    async def _receive(
        self,
        parser: MultipartStreamParser,
        stream: AsyncIterable[bytes],
    ) -> UploadedPart:
        upload: UploadedPart | None = None
        drained = 0
        async for part in parser.parse(stream):
            if part.drained:
                drained += 1
            elif upload is None:
                upload = part

        if drained:
            logger.info("Ignored %d extra file part(s); only the first is stored", drained)
        if upload is None:
            raise MissingFileError()
        return upload

    async def process(
        self,
        content_type: str | None,
        stream: AsyncIterable[bytes],
    ) -> UploadResult:
        """Run ``handle`` and fold every outcome into an ``UploadResult``."""
        try:
            stored = await self.handle(content_type, stream)
        except UploadError as exc:
            return UploadResult(error=exc)
        except Exception as exc:
            logger.exception("Unexpected error while handling upload")
            return UploadResult(error=exc)
        return UploadResult(stored=stored)
