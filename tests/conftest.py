import os

# Must be set before the app (and its engine) is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from flocktrack.auth import StaticTokenAuthProvider, get_auth_provider
from flocktrack.database import Base, engine
from flocktrack.main import app

TOKENS = {"token-alice": "alice", "token-bob": "bob"}


def auth(token="token-alice"):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def static_auth():
    app.dependency_overrides[get_auth_provider] = lambda: StaticTokenAuthProvider(TOKENS)
    yield
    app.dependency_overrides.pop(get_auth_provider, None)


@pytest.fixture
def client(static_auth):
    with TestClient(app, headers=auth()) as c:
        yield c


@pytest.fixture
def anon_client(static_auth):
    with TestClient(app) as c:
        yield c
