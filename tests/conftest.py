"""
Shared fixtures: a recording publisher that can simulate broker outages, and
app/client factories wired with it.
"""
from typing import Any, Dict, Iterable

import pytest
from fastapi.testclient import TestClient

from wildtrack_api.errors import PublishError
from wildtrack_api.main import create_app
from wildtrack_api.models import PublishResult
from wildtrack_api.producer import Publisher
from wildtrack_api.repository import InMemoryTelemetryRepository, SyntheticTelemetryRepository
from wildtrack_api.settings import Settings


class FakePublisher(Publisher):
    def __init__(self, fail: bool = False, fail_on: Iterable[int] = ()):
        self.fail = fail
        self.fail_on = set(fail_on)
        self.attempts = []
        self.sent = []

    async def publish(self, document: Dict[str, Any]) -> PublishResult:
        call = len(self.attempts)
        self.attempts.append(document)
        if self.fail or call in self.fail_on:
            raise PublishError("broker unreachable")
        self.sent.append(document)
        return PublishResult(partition=1, offset=1000 + len(self.sent) - 1)

    def health(self):
        return {"status": "connected", "message": "fake"}


@pytest.fixture
def settings():
    return Settings(kafka_bootstrap="", app_env="test", repository_backend="synthetic", mock_seed=7)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def down_publisher():
    return FakePublisher(fail=True)


@pytest.fixture
def make_client(settings):
    def _make(publisher=None, repository=None, app_settings=None, raise_server_exceptions=True):
        app = create_app(
            settings=app_settings or settings,
            publisher=publisher if publisher is not None else FakePublisher(),
            repository=repository if repository is not None else SyntheticTelemetryRepository(seed=7),
        )
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)
    return _make


@pytest.fixture
def client(make_client, publisher):
    with make_client(publisher=publisher) as c:
        yield c


@pytest.fixture
def memory_repository():
    return InMemoryTelemetryRepository()


@pytest.fixture
def valid_record():
    return {
        "deviceId": "wolf-007",
        "timestamp": "2024-01-15T10:30:00Z",
        "location": {"latitude": 53.9169123456, "longitude": -122.7494987654, "accuracy": 4.5},
        "sensors": {"temperature": 12.34567, "humidity": 55.5555},
        "wildlife": {"species": "Gray Wolf", "individualId": "wolf-a1", "activity": "active", "health": "healthy"},
        "metadata": {"battery": 85, "signal": 92},
        "tags": ["collar", "pack-north"],
    }
