import os
import random
import tempfile
import uuid

# settings are read at import time
_TEST_DIR = tempfile.mkdtemp(prefix="ledger-test-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'ledger.db')}"
os.environ["ENV"] = "test"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from ledger.api import onboarding, sessions
from ledger.main import app
from ledger.services.chat_backend import get_chat_backend

from fixtures import ScriptedBackend


@pytest.fixture
def backend():
    scripted = ScriptedBackend()
    app.dependency_overrides[get_chat_backend] = lambda: scripted
    yield scripted
    app.dependency_overrides.pop(get_chat_backend, None)


@pytest.fixture
def rng():
    app.dependency_overrides[sessions.get_random] = lambda: random.Random(7)
    yield
    app.dependency_overrides.pop(sessions.get_random, None)


@pytest.fixture
def client(backend, rng):
    with TestClient(app) as c:
        yield c
    sessions.active_sessions.clear()
    onboarding.active_onboarding.clear()


@pytest.fixture
def credentials():
    return {"email": f"user-{uuid.uuid4().hex[:8]}@example.com", "password": "str0ng!pw"}


@pytest.fixture
def auth_headers(client, credentials):
    r = client.post("/api/auth/register", json={**credentials, "display_name": "Sam"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def principle(client, auth_headers, backend):
    """A principle created through the onboarding conversation."""
    backend.replies += [
        "That sounds frustrating. What do you wish you'd said or done instead?",
        "How about: I listen fully, even when I'm busy. Sound right?",
        "Great.\nPRINCIPLE_CONFIRMED: I listen fully, even when I'm busy\n",
    ]
    client.post("/api/onboarding/start", headers=auth_headers)
    for message in (
        "I cut off a teammate in standup",
        "I wish I had let her finish",
        "Yes, that's it",
    ):
        r = client.post("/api/onboarding/respond", json={"message": message}, headers=auth_headers)
        assert r.status_code == 200

    r = client.get("/api/principles", headers=auth_headers)
    return r.json()[0]
