"""Fixtures for API contract tests."""

import pytest
from fastapi.testclient import TestClient

from gymledger.main import app
from gymledger.services import get_db


@pytest.fixture
def client(db_session):
    """FastAPI test client bound to the test session."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Session is closed by the db_session fixture

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
