import logging
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app import repository
from app.config import Settings
from app.main import create_app
from app.schemas import ProductOut


class TestCreate:

    def test_assigns_id_and_equal_timestamps(self, client):
        resp = client.post("/api/products", json={"name": "Cap", "description": "A cap", "price": 9.99})

        assert resp.status_code == 201
        body = resp.json()
        assert body["id"] == 1
        assert body["price"] == 9.99
        assert body["image"] is None
        assert body["createdAt"] == body["updatedAt"]
        assert resp.headers["Location"].endswith("/api/products/1")

    def test_ids_are_never_reused(self, client, make_product):
        first = make_product(name="One")
        client.delete(f"/api/products/{first['id']}")
        second = make_product(name="Two")
        assert second["id"] != first["id"]

    def test_reports_every_failing_field(self, client):
        resp = client.post("/api/products", json={"name": "  ", "description": "", "price": 0})

        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "One or more validation errors occurred."
        assert set(body["errors"]) == {"name", "description", "price"}

    def test_missing_body_fields(self, client):
        resp = client.post("/api/products", json={})
        assert resp.status_code == 400
        assert {"name", "description", "price"} <= set(resp.json()["errors"])

    def test_rejects_overlong_name(self, client):
        resp = client.post("/api/products", json={"name": "x" * 101, "description": "d", "price": 1})
        assert resp.status_code == 400
        assert "name" in resp.json()["errors"]

    def test_rejects_price_that_rounds_to_zero(self, client):
        resp = client.post("/api/products", json={"name": "n", "description": "d", "price": 0.001})
        assert resp.status_code == 400
        assert resp.json()["errors"]["price"] == ["Price must be greater than 0"]

    def test_rejects_price_that_rounds_past_column_limit(self, client):
        resp = client.post("/api/products", json={"name": "n", "description": "d", "price": "9999999999999999.999"})
        assert resp.status_code == 400
        assert resp.json()["errors"]["price"] == ["Price cannot exceed 9999999999999999.99"]

    def test_blank_image_is_stored_as_null(self, make_product):
        assert make_product(image="   ")["image"] is None

    def test_accepts_price_as_string_and_image(self, client):
        resp = client.post("/api/products", json={
            "name": "Mug", "description": "A mug", "price": "4.50", "image": "https://img.example/mug.png",
        })
        assert resp.status_code == 201
        assert resp.json()["price"] == 4.5
        assert resp.json()["image"] == "https://img.example/mug.png"


class TestGet:

    def test_returns_product(self, client, make_product):
        created = make_product()
        resp = client.get(f"/api/products/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == created

    def test_unknown_id_is_404(self, client):
        resp = client.get("/api/products/42")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Product not found"}

    def test_non_integer_id_is_client_error(self, client):
        assert client.get("/api/products/abc").status_code == 400

    def test_id_beyond_64_bits_is_client_error(self, client):
        huge = 99999999999999999999
        body = {"id": huge, "name": "n", "description": "d", "price": 1}
        assert client.get(f"/api/products/{huge}").status_code == 400
        assert client.put(f"/api/products/{huge}", json=body).status_code == 400
        assert client.delete(f"/api/products/{huge}").status_code == 400
        assert client.get(f"/api/products/-{huge}").status_code == 400

    def test_database_failure_is_500_and_rolls_back(self, app, client, monkeypatch, caplog):
        rollbacks = []
        factory = app.state.session_factory

        def tracking_factory():
            s = factory()
            original = s.rollback

            def rollback():
                rollbacks.append(True)
                original()
            s.rollback = rollback
            return s

        def broken(session, pid):
            raise OperationalError("SELECT products", {}, Exception("database is locked"))

        monkeypatch.setattr(app.state, "session_factory", tracking_factory)
        monkeypatch.setattr(repository, "get_product", broken)

        with caplog.at_level(logging.ERROR, logger="catalog.api"):
            resp = client.get("/api/products/1")

        assert resp.status_code == 500
        assert resp.json() == {"message": "A database error occurred while processing your request"}
        assert rollbacks == [True]
        assert "Database error on GET /api/products/1" in caplog.text


class TestList:

    def test_empty_store(self, client):
        resp = client.get("/api/products")
        assert resp.status_code == 200
        assert resp.json() == []
        assert resp.headers["X-Total-Count"] == "0"
        assert resp.headers["X-Page"] == "1"
        assert resp.headers["X-Page-Size"] == "10"

    def test_second_page_of_five(self, client, make_product):
        for i in range(12):
            make_product(name=f"Product {i + 1}")

        resp = client.get("/api/products", params={"page": 2, "pageSize": 5})

        assert [p["id"] for p in resp.json()] == [6, 7, 8, 9, 10]
        assert resp.headers["X-Total-Count"] == "12"
        assert resp.headers["X-Page"] == "2"
        assert resp.headers["X-Page-Size"] == "5"

    def test_last_partial_page_and_beyond(self, client, make_product):
        for i in range(7):
            make_product(name=f"Product {i + 1}")

        partial = client.get("/api/products", params={"page": 2, "pageSize": 5})
        beyond = client.get("/api/products", params={"page": 5, "pageSize": 5})

        assert [p["id"] for p in partial.json()] == [6, 7]
        assert beyond.json() == []
        assert beyond.headers["X-Total-Count"] == "7"

    def test_search_matches_name_or_description(self, client, make_product):
        make_product(name="Baseball Cap", description="Stylish")
        make_product(name="Scarf", description="Pairs with a cap")
        make_product(name="Hoodie", description="Cozy pullover")

        resp = client.get("/api/products", params={"search": "CAP"})

        assert [p["name"] for p in resp.json()] == ["Baseball Cap", "Scarf"]
        assert resp.headers["X-Total-Count"] == "2"

    def test_empty_search_returns_everything(self, client, make_product):
        make_product(name="A")
        make_product(name="B")
        resp = client.get("/api/products", params={"search": ""})
        assert len(resp.json()) == 2

    def test_wildcards_in_search_are_literal(self, client, make_product):
        make_product(name="100% cotton tee")
        make_product(name="Plain tee")
        make_product(name="snake_case mug")

        assert [p["name"] for p in client.get("/api/products", params={"search": "%"}).json()] == ["100% cotton tee"]
        assert [p["name"] for p in client.get("/api/products", params={"search": "_"}).json()] == ["snake_case mug"]

    def test_page_size_is_capped(self, client, make_product):
        for i in range(3):
            make_product(name=f"P{i}")
        resp = client.get("/api/products", params={"pageSize": 500})
        assert resp.status_code == 200
        assert resp.headers["X-Page-Size"] == "50"
        assert len(resp.json()) == 3

    @pytest.mark.parametrize("params", [{"page": 0}, {"pageSize": 0}, {"page": -1}, {"page": 10000000000000000000}])
    def test_rejects_out_of_range_paging(self, client, params):
        assert client.get("/api/products", params=params).status_code == 400


class TestUpdate:

    def test_replaces_fields_and_refreshes_updated_at(self, client, make_product, monkeypatch):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        ticks = iter([start, start + timedelta(seconds=5)])
        monkeypatch.setattr(repository, "utcnow", lambda: next(ticks))

        created = ProductOut.model_validate(make_product())
        resp = client.put(f"/api/products/{created.id}", json={
            "id": created.id, "name": "Cap v2", "description": "A better cap",
            "price": 12.50, "image": "https://img.example/cap.png",
        })

        assert resp.status_code == 200
        updated = ProductOut.model_validate(resp.json())
        assert updated.id == created.id
        assert updated.name == "Cap v2"
        assert float(updated.price) == 12.5
        assert updated.image == "https://img.example/cap.png"
        assert updated.created_at == created.created_at
        assert updated.updated_at > created.updated_at

    def test_persists(self, client, make_product):
        created = make_product()
        client.put(f"/api/products/{created['id']}", json={**created, "name": "Renamed"})
        assert client.get(f"/api/products/{created['id']}").json()["name"] == "Renamed"

    def test_id_mismatch_rejected_without_writing(self, client, make_product):
        created = make_product()
        resp = client.put(f"/api/products/{created['id']}", json={
            "id": created["id"] + 6, "name": "Other", "description": "Other", "price": 1,
        })

        assert resp.status_code == 400
        assert resp.json() == {"message": "Product ID mismatch"}
        assert client.get(f"/api/products/{created['id']}").json() == created

    def test_unknown_id_is_404(self, client):
        resp = client.put("/api/products/99", json={"id": 99, "name": "n", "description": "d", "price": 1})
        assert resp.status_code == 404

    def test_invalid_payload_is_400(self, client, make_product):
        created = make_product()
        resp = client.put(f"/api/products/{created['id']}", json={**created, "price": -3})
        assert resp.status_code == 400
        assert "price" in resp.json()["errors"]


class TestDelete:

    def test_delete_then_get_is_404(self, client, make_product):
        created = make_product()

        resp = client.delete(f"/api/products/{created['id']}")

        assert resp.status_code == 200
        assert resp.json() == {"message": "Product deleted successfully"}
        assert client.get(f"/api/products/{created['id']}").status_code == 404

    def test_unknown_id_is_404(self, client):
        assert client.delete("/api/products/7").status_code == 404

    def test_second_delete_is_404(self, client, make_product):
        created = make_product()
        client.delete(f"/api/products/{created['id']}")
        assert client.delete(f"/api/products/{created['id']}").status_code == 404


def test_end_to_end_scenario(client):
    resp = client.post("/api/products", json={"name": "Cap", "description": "A cap", "price": 9.99})
    assert resp.status_code == 201
    n = resp.json()["id"]

    fetched = client.get(f"/api/products/{n}").json()
    assert (fetched["name"], fetched["description"], fetched["price"]) == ("Cap", "A cap", 9.99)

    updated = client.put(f"/api/products/{n}", json={"id": n, "name": "Cap", "description": "A cap", "price": 12.50})
    assert updated.status_code == 200
    assert updated.json()["price"] == 12.5
    assert ProductOut.model_validate(updated.json()).updated_at >= ProductOut.model_validate(fetched).updated_at

    assert client.delete(f"/api/products/{n}").status_code == 200
    assert client.get(f"/api/products/{n}").status_code == 404


class TestServiceEndpoints:

    def test_controller_status(self, client):
        body = client.get("/api/products/test").json()
        assert body["message"] == "Products controller is working"
        assert "timestamp" in body

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.text == "ok"

    def test_metrics(self, client):
        client.get("/api/products")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "http_requests_total" in resp.text

    def test_cors_allows_localhost_and_exposes_paging_headers(self, client):
        resp = client.get("/api/products", headers={"Origin": "http://localhost:3000"})
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
        exposed = resp.headers["access-control-expose-headers"]
        for header in ("X-Total-Count", "X-Page", "X-Page-Size"):
            assert header in exposed

    def test_cors_allows_vercel_deployments(self, client):
        origin = "https://shop-git-main-team.vercel.app"
        resp = client.get("/api/products", headers={"Origin": origin})
        assert resp.headers["access-control-allow-origin"] == origin

    def test_cors_rejects_unknown_origin(self, client):
        resp = client.get("/api/products", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in resp.headers


def test_development_settings_seed_samples():
    app = create_app(Settings(env="development", seed_sample_data=True))
    with TestClient(app) as c:
        resp = c.get("/api/products", params={"pageSize": 3})
        assert resp.headers["X-Total-Count"] == "10"
        assert [p["name"] for p in resp.json()] == ["Classic T-Shirt", "Denim Jeans", "Leather Jacket"]


def test_custom_api_prefix():
    app = create_app(Settings(env="test", api_prefix="/catalog", seed_sample_data=False))
    with TestClient(app) as c:
        assert c.get("/catalog/products").status_code == 200
        assert c.get("/api/products").status_code == 404
