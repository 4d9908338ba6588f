from __future__ import annotations

import pytest

from fakes import login, make_backend
from heirloom import create_app


@pytest.fixture
def backend():
    return make_backend()


@pytest.fixture
def app(backend):
    app = create_app(backend=backend)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    login(client)
    return client
