"""Pytest fixtures for testing"""

import os

# Point settings at SQLite before any purchase_sync module builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import httpx
import pytest
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from mock_servers.shop_server import main as mock_shop
from purchase_sync.api.dependencies import get_shop_client
from purchase_sync.api.main import create_app
from purchase_sync.infrastructure.clients.shop import ShopClient
from purchase_sync.infrastructure.database.models import Base
from purchase_sync.infrastructure.database.session import get_db, init_db
from purchase_sync.services.crawler import CollectionCrawler


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    init_db(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mock_shop_data():
    """Empty mock upstream; tests seed it with mock_shop.seed(...)"""
    mock_shop.seed()
    yield mock_shop
    mock_shop.load()


def mock_shop_client() -> ShopClient:
    """ShopClient wired to the in-process mock upstream"""
    return ShopClient(
        base_url="http://mock-shop",
        access_token="test-token",
        transport=httpx.ASGITransport(app=mock_shop.app),
    )


@pytest.fixture
def client(db: Session, mock_shop_data) -> TestClient:
    """Create FastAPI test client with test database and mock upstream"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_shop_client():
        async with mock_shop_client() as shop_client:
            yield shop_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_shop_client] = override_get_shop_client
    return TestClient(app)


@pytest.fixture
async def crawler(mock_shop_data):
    """Crawler talking to the mock upstream"""
    async with mock_shop_client() as shop_client:
        yield CollectionCrawler(shop_client)
