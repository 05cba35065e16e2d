import os

# Must be set before visitor_register.database builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from visitor_register.database import get_db
from visitor_register.lifecycle import EntryLifecycle
from visitor_register.main import app
from visitor_register.models import Base
from visitor_register.storage import EntryStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return EntryStore(db_session)


@pytest.fixture
def lifecycle(store):
    return EntryLifecycle(store)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def visitor():
    return {
        "name": "Alice",
        "address": "123 Rd",
        "phone_number": "0812345678",
        "whom_to_meet": "Budi",
        "purpose": "Meeting",
    }
