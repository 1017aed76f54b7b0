from __future__ import annotations

import os

import pytest

os.environ.setdefault("VIDINGEST_AAD_TENANT_DOMAIN", "contoso.onmicrosoft.com")
os.environ.setdefault("VIDINGEST_CLIENT_ID", "test-client-id")
os.environ.setdefault("VIDINGEST_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault(
    "VIDINGEST_REST_API_ENDPOINT", "https://media.test/api/"
)
os.environ.setdefault("VIDINGEST_STORAGE_ACCOUNT_URL", "https://uploads.blob.test")
os.environ.setdefault("VIDINGEST_STORAGE_SAS_TOKEN", "sv=2021-08-06&ss=b&sig=test")

from src.vidingest.config import AppConfig  # noqa: E402
from src.vidingest.pipeline.pipeline_context import ServiceContext  # noqa: E402
from tests.mocks.media_services import FakeMediaServices  # noqa: E402
from tests.mocks.storage import FakeStorage  # noqa: E402


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def media() -> FakeMediaServices:
    return FakeMediaServices()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def context(app_config, media, storage) -> ServiceContext:
    return ServiceContext(config=app_config, media=media, storage=storage)  # type: ignore[arg-type]
