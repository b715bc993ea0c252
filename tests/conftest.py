"""Shared fixtures for the assistant router tests."""

import pytest
from fastapi.testclient import TestClient

from bankbot.app.core.config import Settings
from bankbot.app.main import create_app
from bankbot.app.middleware.rate_limit import BucketStore, RateLimiter
from bankbot.app.services.intent import IntentClassifier


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return BucketStore(clock=clock)


@pytest.fixture
def limiter(store):
    return RateLimiter(store=store)


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.fixture
def app_settings():
    return Settings(_env_file=None)


@pytest.fixture
def app(store, app_settings):
    return create_app(config=app_settings, store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
