# tests/conftest.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from riverflow.core.config import Settings
from riverflow.main import create_app
from riverflow.services.runtime import LiveRuntime
from tests.fakes import FakeClock, FakeStore, make_settings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def runtime(settings, clock) -> LiveRuntime:
    return LiveRuntime(settings, clock=clock)


@pytest.fixture
def client(settings, runtime):
    app = create_app(settings, runtime=runtime)
    with TestClient(app) as c:
        yield c
