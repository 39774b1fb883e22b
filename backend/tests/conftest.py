"""
Cadastro API — Test Configuration (conftest.py)
=================================================

Fixtures:
    mock_db_session:  AsyncMock standing in for AsyncSession (service unit tests)
    hasher:           bcrypt at the minimum cost (4) so tests stay fast
    database:         Database on a throwaway SQLite file with tables created
    test_client:      httpx AsyncClient wired to an app built on `database`
    usuario_payload:  the "Ana" registration body used across API tests
"""

import os

# Must run before any app import: app.main builds a default app at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.database import Database
from app.main import create_app
from app.services.password_service import PasswordHasher


@pytest.fixture
def mock_db_session():
    """
    Mock async database session.

    Usage:
        mock_db_session.execute.return_value = make_result(first=None)
        mock_db_session.get.return_value = usuario
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def usuario_payload():
    return {
        "nome": "Ana",
        "data_nascimento": "1990-05-01",
        "cpf": "111",
        "email": "a@x.com",
        "telefone": "11999990000",
        "endereco": "Rua A, 1",
        "username": "ana",
        "senha": "pw1",
    }


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'cadastro.db'}")
    await db.create_tables()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def test_client(database, hasher):
    """
    HTTPX AsyncClient talking to a fresh app over ASGITransport.

    ASGITransport does not run the lifespan, so tables are created by the
    `database` fixture instead of at startup.
    """
    settings = Settings(
        database_url=str(database.url),
        bcrypt_rounds=4,
        log_level="WARNING",
    )
    app = create_app(settings=settings, database=database, hasher=hasher)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
