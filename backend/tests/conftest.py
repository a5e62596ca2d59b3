from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite:///./test_biosync.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["RESCUE_BASE_URL"] = "https://biosync.example"

from biosync.core.config import get_settings
get_settings.cache_clear()
from biosync.api.deps import build_services
from biosync.core.errors import PersistenceError
from biosync.db.base import Base
from biosync.db.session import SessionLocal, engine
from biosync.main import app
from biosync.services.advisory import AdvisoryClient, RetryPolicy
from biosync.services.storage import KeyValueStore, TimelineRepository
from biosync.services.timeline import TimelineStore

TEST_DB_PATH = Path("test_biosync.db")

DEFAULT_REPLY = "• Check glucose on arrival\n• Avoid penicillin-class drugs\n• Confirm O+ before transfusion"


class FakeGenerator:
    """Scripted text generator: pops one outcome per call, raising exceptions."""

    def __init__(self, outcomes=None, default: str = DEFAULT_REPLY):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.prompts: list[str] = []
        self.temperatures: list[float] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str, *, temperature: float) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FailingKeyValueStore(KeyValueStore):
    """Reads work, every write fails like a full disk."""

    def set_many(self, values) -> None:
        raise PersistenceError("disk quota exceeded")

    def remove(self, *keys: str) -> None:
        raise PersistenceError("disk quota exceeded")


class FixedClock:
    def __init__(self, moment: datetime = datetime(2026, 10, 19, 15, 4)):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def kv() -> KeyValueStore:
    return KeyValueStore(SessionLocal)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def store(kv, clock) -> TimelineStore:
    timeline = TimelineStore(TimelineRepository(kv), clock=clock)
    timeline.load()
    return timeline


@pytest.fixture()
def failing_store(clock) -> TimelineStore:
    timeline = TimelineStore(TimelineRepository(FailingKeyValueStore(SessionLocal)), clock=clock)
    timeline.load()
    return timeline


@pytest.fixture()
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def advisory(fake_generator, recording_sleep) -> AdvisoryClient:
    return AdvisoryClient(fake_generator, retry_policy=RetryPolicy(), sleep=recording_sleep)


@pytest.fixture()
def client(fake_generator, recording_sleep) -> TestClient:
    app.state.services = build_services(
        get_settings(),
        SessionLocal,
        advisory=AdvisoryClient(fake_generator, sleep=recording_sleep),
    )
    with TestClient(app) as test_client:
        yield test_client
    app.state.services = None


@pytest.fixture(scope="session", autouse=True)
def cleanup_db_file():
    yield
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
