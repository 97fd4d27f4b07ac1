import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app


@pytest.fixture
def settings():
    return Settings(env="test", database_url="sqlite://", seed_sample_data=False, max_page_size=50)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """TestClient with startup hooks run (tables created)."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_product(client):
    def _make(name="Cap", description="A cap", price=9.99, image=None):
        body = {"name": name, "description": description, "price": price}
        if image is not None:
            body["image"] = image
        resp = client.post("/api/products", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make
