import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    """Create test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def stub_metrics():
    from tests.helpers.metrics_stub import StubMetrics

    return StubMetrics()
