import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from upload_gateway.core.config import get_settings
from upload_gateway.services import storage as storage_service
from upload_gateway.services.policy import UploadPolicy
from upload_gateway.services.uploads import UploadService


class RecordingStorage(storage_service.StorageBackend):
    """In-memory backend that records every write call."""

    scheme = "memory"

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.writes: list[tuple[str, bytes, str]] = []
        self.objects: dict[str, bytes] = {}

    async def write(self, key, data, content_type):  # type: ignore[override]
        self.writes.append((key, data, content_type))
        if self.fail_with is not None:
            raise self.fail_with
        self.objects[key] = data
        return storage_service.StorageLocation(key=key, backend=self.scheme)

    def resolve_public_url(self, location):  # type: ignore[override]
        return f"https://cdn.test/uploads/{location.key}"


def build_multipart(parts, boundary: str = "test-boundary-1234") -> tuple[bytes, str]:
    """Encode ``(field, filename, content_type, data)`` tuples as a multipart body."""
    body = b""
    for field_name, filename, content_type, data in parts:
        disposition = f'form-data; name="{field_name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{boundary}\r\nContent-Disposition: {disposition}\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        body += head.encode() + b"\r\n" + data + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return body, f"multipart/form-data; boundary={boundary}"


@pytest.fixture(scope="session", autouse=True)
def configure_environment(tmp_path_factory):
    upload_dir = tmp_path_factory.mktemp("uploads")
    os.environ["ENV"] = "test"
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["STORAGE_BACKEND"] = "local"
    os.environ["LOCAL_STORAGE_DIR"] = str(upload_dir)
    os.environ["LOCAL_PUBLIC_URL_PREFIX"] = "/uploads"
    os.environ["S3_ACCESS_KEY"] = "test"
    os.environ["S3_SECRET_KEY"] = "test"
    os.environ["S3_BUCKET_UPLOADS"] = "test-bucket"
    get_settings.cache_clear()
    storage_service.get_storage_backend.cache_clear()
    return upload_dir


@pytest.fixture(scope="session")
def app_instance(configure_environment):
    from upload_gateway.main import create_app

    return create_app()


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def policy():
    return UploadPolicy.from_settings(get_settings())


@pytest.fixture
def multipart_body():
    return build_multipart


@pytest.fixture
def install_storage(app_instance, policy):
    """Swap the storage backend (and optionally the policy) used by the app."""

    def _install(backend, upload_policy: UploadPolicy | None = None):
        app_instance.state.storage = backend
        app_instance.state.upload_service = UploadService(backend, upload_policy or policy)
        return backend

    return _install


@pytest_asyncio.fixture
async def client(app_instance, install_storage, storage):
    # Mimic the lifespan, which ASGITransport does not run
    install_storage(storage)
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
