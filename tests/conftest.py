from unittest.mock import MagicMock

import pytest
import redis
from fastapi.testclient import TestClient

from pastestore.config import Settings
from pastestore.database import InMemoryPasteStore
from pastestore.main import create_app


@pytest.fixture
def store() -> InMemoryPasteStore:
    return InMemoryPasteStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        STORAGE_BACKEND='memory',
        TEST_MODE=True,
        APP_DOMAIN='https://paste.test/',
        ID_LENGTH=10,
    )


@pytest.fixture
def client(settings: Settings, store: InMemoryPasteStore) -> TestClient:
    return TestClient(create_app(settings=settings, store=store))


@pytest.fixture
def redis_client() -> redis.Redis:
    """Mock a Redis client with pipeline and script support."""
    client = MagicMock(spec=redis.Redis)
    pipe = MagicMock(spec=redis.client.Pipeline)
    pipe.__enter__.return_value = pipe
    pipe.__exit__.return_value = None
    client.pipeline.return_value = pipe
    client.register_script.side_effect = lambda source: MagicMock(name='script', source=source)
    return client
