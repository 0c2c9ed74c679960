from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_handler
from app.core.store import DocumentStore
from app.main import app
from app.services.priority_handler import PriorityRequestHandler

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def handler(store, clock) -> PriorityRequestHandler:
    return PriorityRequestHandler(store=store, clock=clock, max_workers=2)


@pytest.fixture
def client(handler):
    app.dependency_overrides[get_handler] = lambda: handler
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
