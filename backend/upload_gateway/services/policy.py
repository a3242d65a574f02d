from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from upload_gateway.core.config import Settings
from upload_gateway.core.errors import InvalidTypeError, PayloadTooLargeError


def normalize_content_type(content_type: str | None) -> str:
    """Strip parameters and case: ``"Image/PNG; q=1"`` -> ``"image/png"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _format_size(size: int) -> str:
    if size % (1024 * 1024) == 0:
        return f"{size // (1024 * 1024)}MB"
    if size % 1024 == 0:
        return f"{size // 1024}KB"
    return f"{size} bytes"


@dataclass(frozen=True)
class UploadPolicy:
    allowed_types: frozenset[str]
    max_size: int

    @classmethod
    def create(cls, allowed_types: Iterable[str], max_size: int) -> UploadPolicy:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        normalized = frozenset(normalize_content_type(t) for t in allowed_types)
        return cls(allowed_types=normalized - {""}, max_size=max_size)

    @classmethod
    def from_settings(cls, settings: Settings) -> UploadPolicy:
        return cls.create(settings.upload_allowed_types, settings.upload_max_bytes)

    def check_type(self, content_type: str | None) -> None:
        if normalize_content_type(content_type) not in self.allowed_types:
            allowed = ", ".join(sorted(self.allowed_types))
            raise InvalidTypeError(
                f"Invalid file type: {content_type or 'unknown'}. Allowed: {allowed}"
            )

    def check_size(self, running_size: int) -> None:
        if running_size > self.max_size:
            raise PayloadTooLargeError(f"File too large (max {_format_size(self.max_size)})")

    def check(self, content_type: str | None, running_size: int) -> None:
        self.check_type(content_type)
        self.check_size(running_size)
