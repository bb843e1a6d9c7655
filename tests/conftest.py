import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# In-memory DB and no external API keys for tests
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["LLM_PROVIDER"] = "auto"
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["DATABASE_URL"] = ""
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["STORE_LATENCY_MS"] = "0"

from ayurmed.database import close_db, init_db
from ayurmed.dependencies import drafts
from ayurmed.main import app
from ayurmed.services.store import DataStore

# 1x1 transparent PNG
PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


async def _reset_db(seed: bool):
    import ayurmed.database as db_mod

    # Close any existing connection
    if db_mod._db is not None:
        try:
            await db_mod._db.close()
        except Exception:
            pass
    db_mod._db = None

    # Override module-level config directly (avoids fragile importlib.reload)
    db_mod.DATABASE_PATH = ":memory:"
    db_mod.DATABASE_URL = ""
    db_mod.SEED_DEMO_DATA = seed

    drafts.clear()
    await init_db()
    return await db_mod.get_db()


@pytest_asyncio.fixture
async def db():
    """Provide a fresh, empty in-memory database for each test."""
    database = await _reset_db(seed=False)
    yield database
    await close_db()


@pytest_asyncio.fixture
async def seeded_db():
    """Provide a fresh in-memory database holding the demo accounts."""
    database = await _reset_db(seed=True)
    yield database
    await close_db()


@pytest.fixture
def store(db):
    return DataStore(db, latency_ms=0)


@pytest.fixture
def seeded_store(seeded_db):
    return DataStore(seeded_db, latency_ms=0)


@pytest.fixture
def client():
    """Provide a synchronous TestClient for routes that do not touch the database."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(seeded_db):
    """Provide an async httpx client against the seeded app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def png_data_url():
    return PNG_DATA_URL


@pytest.fixture
def login(async_client):
    """Return a coroutine that logs in by email and yields auth headers."""

    async def _login(email: str) -> dict:
        resp = await async_client.post("/api/auth/login", json={"email": email})
        assert resp.status_code == 200, resp.text
        return {"X-Session-Token": resp.json()["token"]}

    return _login


@pytest_asyncio.fixture
async def doctor_headers(login):
    return await login("anjali@hospital.com")


@pytest_asyncio.fixture
async def patient_headers(login):
    return await login("rajesh@example.com")


@pytest_asyncio.fixture
async def admin_headers(login):
    return await login("admin@hospital.com")
