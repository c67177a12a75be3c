import asyncio

import pytest
from fastapi.testclient import TestClient

from api_gateway.context import AppContext
from api_gateway.main import create_app
from shared.config import Settings
from shared.database import init_db


class ScriptedGateway:
    """
    Stands in for the completion provider.

    Each call pops the next outcome: a string is returned as the reply, an
    exception is raised, a coroutine function is awaited with the history.
    With nothing scripted it answers "ok".
    """

    def __init__(self):
        self.outcomes = []
        self.calls = []
        self.started = asyncio.Event()

    def script(self, *outcomes):
        self.outcomes.extend(outcomes)
        return self

    async def complete(self, history):
        self.calls.append([(m.seq, m.role, m.content) for m in history])
        self.started.set()
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if callable(outcome):
            outcome = await outcome(history)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'chat.db'}",
        secret_key="test-secret",
        history_window=20,
    )


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def ctx(settings, gateway):
    ctx = AppContext.from_settings(settings, gateway=gateway)
    init_db(ctx.engine)
    yield ctx
    ctx.engine.dispose()


@pytest.fixture
def client(ctx):
    with TestClient(create_app(ctx)) as c:
        yield c


def auth_headers(client, handle="alice", password="pw1"):
    r = client.post("/api/auth/register", json={"handle": handle, "password": password})
    assert r.status_code == 201, r.text
    r = client.post("/api/auth/login", json={"handle": handle, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


@pytest.fixture
def alice(client):
    return auth_headers(client, "alice", "pw1")


@pytest.fixture
def bob(client):
    return auth_headers(client, "bob", "pw2")
