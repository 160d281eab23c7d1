import os

os.environ["ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.db import Base, db_manager, get_db

pytest_plugins = ["tests.fixtures.waha_fixtures"]


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    db_manager.configure(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = db_manager.new_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def app_instance(db):
    from app.main import create_app

    application = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app_instance):
    with TestClient(app_instance) as c:
        yield c
