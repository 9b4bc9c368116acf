"""
Pytest configuration and fixtures for backend tests.
"""
import os
import sys
import tempfile
from datetime import datetime
from typing import Generator
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configure the app before it is imported: no startup DDL, throwaway upload dir
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="plant_catalog_uploads_")
os.environ["BASE_URL"] = "http://testserver"

from app.core.database import Base, get_db  # noqa: E402
from app.models import Category, Plant  # noqa: E402
from main import app  # noqa: E402

# Use in-memory SQLite shared across threads for tests
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> TestClient:
    """Create a test client with overridden database dependency."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_category(db_session: Session):
    """Insert a category directly (bypasses API validation, e.g. dangling parents)."""
    def _make(name: str, parent_id: str | None = None, created_at: datetime | None = None, **fields) -> Category:
        category = Category(name=name, parentId=parent_id, **fields)
        if created_at is not None:
            category.createdAt = created_at
            category.updatedAt = created_at
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category
    return _make


@pytest.fixture
def make_plant(db_session: Session):
    """Insert a plant directly."""
    def _make(name: str, category_ids: list[str] | None = None, status: str = "active",
              created_at: datetime | None = None, **fields) -> Plant:
        plant = Plant(name=name, status=status, categoryIds=category_ids or [], **fields)
        if created_at is not None:
            plant.createdAt = created_at
            plant.updatedAt = created_at
        db_session.add(plant)
        db_session.commit()
        db_session.refresh(plant)
        return plant
    return _make


@pytest.fixture
def test_category_data():
    """Sample category data for testing."""
    return {
        "name": "Succulents",
        "description": "Water-storing plants for dry climates",
        "icon": "cactus",
    }


@pytest.fixture
def test_plant_data():
    """Sample plant data for testing."""
    return {
        "name": "Aloe Vera",
        "scientificName": "Aloe barbadensis miller",
        "description": "Medicinal succulent with thick leaves",
    }
