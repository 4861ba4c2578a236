"""
Конфигурация pytest: база SQLite в памяти на каждый тест, отключенные Redis и Kafka
и временный каталог загрузок.
"""
import os

# Настройки читаются при импорте приложения, поэтому окружение задается до импорта
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite+aiosqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["TESTING"] = "1"

from typing import AsyncGenerator, Generator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from campusfix.core.config import settings  # noqa: E402
from campusfix.db.base import Base  # noqa: E402
from campusfix.db.session import get_db  # noqa: E402
from campusfix.models import relationships  # noqa: E402,F401
from campusfix.main import app  # noqa: E402
from tests.mocks.services import MockKafkaProducer, MockRedisCache, patch_kafka, patch_redis  # noqa: E402


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Отдельная база в памяти для каждого теста"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP-клиент приложения; каждый запрос получает свою сессию тестовой базы"""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch) -> str:
    path = tmp_path / "uploads"
    path.mkdir()
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return str(path)


@pytest.fixture
def mock_redis(monkeypatch) -> Generator[MockRedisCache, None, None]:
    """Кэш в памяти вместо Redis"""
    monkeypatch.setattr(settings, "CACHE_ENABLED", True)
    mock_redis_instance, patches = patch_redis()
    for patch_item in patches:
        patch_item.start()

    yield mock_redis_instance

    for patch_item in patches:
        patch_item.stop()


@pytest.fixture
def mock_kafka() -> Generator[MockKafkaProducer, None, None]:
    """Записывает отправленные события вместо отправки в Kafka"""
    mock_kafka_instance, patches = patch_kafka()
    for patch_item in patches:
        patch_item.start()

    yield mock_kafka_instance

    for patch_item in patches:
        patch_item.stop()
