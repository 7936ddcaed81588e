"""Shared fixtures: a session controller wired to in-memory fakes."""

import pytest
import pytest_asyncio

from vaanshika_auth.credentials import CredentialStore, FileBackend, \
    PrecedenceResolver
from vaanshika_auth.session import SessionController
from vaanshika_auth.transport import BackendClient
from vaanshika_auth.tests.util import BASE_URL, FakeBackend, \
    FakeIdentityProvider

SECRET = 'foosecret'
KEY = 'vaanshika_auth_token'


@pytest.fixture()
def fake_backend(provider):
    return FakeBackend(provider=provider)


@pytest.fixture()
def provider():
    return FakeIdentityProvider()


@pytest.fixture()
def store(tmp_path):
    return CredentialStore(FileBackend(str(tmp_path / 'auth_data.json')),
                           KEY, SECRET)


@pytest_asyncio.fixture()
async def client(fake_backend, store, provider):
    client = BackendClient(BASE_URL, store,
                           PrecedenceResolver(store, provider),
                           transport=fake_backend.transport)
    yield client
    await client.close()


@pytest_asyncio.fixture()
async def controller(store, provider, client):
    controller = SessionController(store, provider, client, cooldown=60)
    await controller.start()
    yield controller
    await controller.shutdown()
