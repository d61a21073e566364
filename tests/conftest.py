import os
import tempfile

# Point the app at a throwaway database before any app module reads config.
_DB_DIR = tempfile.mkdtemp(prefix="access-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["SEED_DEFAULT_RULES"] = "0"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core.database.engine import AsyncSessionLocal, drop_db, engine, init_db  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_database() -> None:
    # Every test starts from empty tables.
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client():
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
