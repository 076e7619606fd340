from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

import database
from services.hub_resolver import resolve_city

SAO_PAULO_TZ = ZoneInfo("America/Sao_Paulo")


@pytest.fixture
def mock_db():
    """Base Mongo en mémoire branchée sur le proxy `db`."""
    client = AsyncMongoMockClient()
    database.use_database(client["cargoflash_test"])
    yield database.get_db()
    database.use_database(None)


@pytest.fixture
async def client(mock_db):
    from main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def sao_paulo():
    return resolve_city("São Paulo", "SP")


@pytest.fixture
def campinas():
    return resolve_city("Campinas", "SP")


@pytest.fixture
def manaus():
    return resolve_city("Manaus", "AM")


@pytest.fixture
def monday_morning():
    # lundi 19/10/2026, avant l'ouverture de la fenêtre
    return datetime(2026, 10, 19, 7, 0, tzinfo=SAO_PAULO_TZ)
