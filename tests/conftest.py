"""Shared test fixtures."""

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from helpers import LinkingKey, make_settings
from lnurl_auth.main import create_app, current_identity, require_identity
from lnurl_auth.storage import InMemoryStore


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def linking_key():
    return LinkingKey()


@pytest.fixture()
def users():
    return {}


@pytest.fixture()
def resolve_identity(users):
    def resolve(linking_public_key):
        return users.setdefault(linking_public_key, {"id": linking_public_key})

    return resolve


@pytest.fixture()
def app(settings, store, resolve_identity):
    app = create_app(resolve_identity, settings=settings, store=store)

    @app.get("/whoami")
    async def whoami(identity=Depends(current_identity)):
        return {"identity": identity}

    @app.get("/private")
    async def private(identity=Depends(require_identity)):
        return {"identity": identity}

    return app


@pytest.fixture()
def browser(app):
    """Client with a cookie jar, like the user's browser."""
    return TestClient(app)


@pytest.fixture()
def signer(app):
    """Separate client without the browser's cookies, like the wallet."""
    return TestClient(app)
