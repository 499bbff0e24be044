import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from ticketdesk.config import Settings
from ticketdesk.infra.sql import open_database
from ticketdesk.model.ticket import Base
from ticketdesk.server import create_app

STAFF_USER = "staff"
STAFF_PASSWORD = "letmein"
BASE_URL = "https://tickets.example.com/"


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'tickets.db'}"


@pytest.fixture
def settings(db_url):
    return Settings(
        base_url=BASE_URL,
        database_url=db_url,
        session_secret="test-secret",
        staff_username=STAFF_USER,
        staff_password=STAFF_PASSWORD,
    )


@pytest_asyncio.fixture
async def store(db_url):
    db = open_database(db_url)
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db
    await db.dispose()


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def staff_client(client):
    r = client.post(
        "/login",
        data={"username": STAFF_USER, "password": STAFF_PASSWORD,
              "next": "/"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    return client
