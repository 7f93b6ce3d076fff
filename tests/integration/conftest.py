import pytest
from fastapi.testclient import TestClient

from apps.api.app.core.config import settings
from apps.api.app.services.revocation import InMemoryRevocationStore
from apps.api.app.services.tokens import TokenService


@pytest.fixture()
def token_service():
    return TokenService(settings, InMemoryRevocationStore())


@pytest.fixture()
def app(seeded_users, token_service):
    from apps.api.app.main import create_app

    return create_app(token_service=token_service)


@pytest.fixture()
def client(app):
    with TestClient(app) as tc:
        yield tc
