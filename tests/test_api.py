"""Tests for the carbon calculation REST API."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ecotrace.carbon_calculation import setup as carbon_setup
from ecotrace.carbon_calculation.api.router import router
from ecotrace.carbon_calculation.setup import (
    CarbonCalculationService,
    configure_carbon_service,
    get_carbon_service,
    get_service,
)
from ecotrace.exceptions import CalculationUnavailable

BASE = "/api/v1/carbon"


@pytest.fixture
def service(config, static_adapter):
    return CarbonCalculationService(
        config,
        adapters=[
            static_adapter("grid_a", 400.0, reliability=0.95),
            static_adapter("grid_b", 404.0, reliability=0.9),
        ],
    )


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setattr(carbon_setup, "_singleton_instance", None)
    app = FastAPI()
    configure_carbon_service(app, service=service)
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(service.shutdown)


def _calculate(client, payload, **extra):
    return client.post(f"{BASE}/calculate", json={"activity": payload, **extra})


class TestSetup:
    def test_configure_stores_service(self, service, monkeypatch):
        monkeypatch.setattr(carbon_setup, "_singleton_instance", None)
        app = FastAPI()

        configured = configure_carbon_service(app, service=service)

        assert configured is service
        assert get_carbon_service(app) is service
        assert service.get_metrics()["started"] is True
        assert get_service() is service

    def test_lazy_singleton(self, monkeypatch):
        monkeypatch.setattr(carbon_setup, "_singleton_instance", None)

        first = get_service()

        assert isinstance(first, CarbonCalculationService)
        assert get_service() is first

    def test_unconfigured_app(self):
        with pytest.raises(RuntimeError, match="configure_carbon_service"):
            get_carbon_service(FastAPI())

    def test_unconfigured_router_returns_503(self):
        app = FastAPI()
        app.include_router(router)
        with TestClient(app) as client:
            response = client.get(f"{BASE}/health")
        assert response.status_code == 503


class TestCalculateEndpoint:
    """Tests for POST /calculate."""

    def test_success(self, client, electricity_payload):
        response = _calculate(
            client, electricity_payload,
            request_id="req-42", user_context={"user_id": "dev-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["request_id"] == "req-42"
        assert body["result"]["zone"] == "DE"
        assert body["result"]["carbon_kg"] > 0
        assert body["sci"]["sci_rating"] in {"A", "B", "C", "D", "E"}
        assert body["audit"]["audit_id"]
        assert body["audit"]["error"] is None

    def test_invalid_activity(self, client):
        response = _calculate(client, {"activity_type": "storage", "metadata": {"size_gb": -1}})

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert "validation" in detail["message"]
        assert any("size_gb" in field for field in detail["invalid_fields"])

    def test_unknown_body_field(self, client, electricity_payload):
        response = _calculate(client, electricity_payload, priority="high")
        assert response.status_code == 422

    def test_unavailable(self, client, service, monkeypatch, electricity_payload):
        async def unavailable(*args, **kwargs):
            raise CalculationUnavailable("No emission factor for DE", component="test")

        monkeypatch.setattr(service.pipeline, "run", unavailable)

        response = _calculate(client, electricity_payload)

        assert response.status_code == 503


class TestAuditEndpoints:
    """Tests for the audit record endpoints."""

    def test_get_record(self, client, electricity_payload):
        audit_id = _calculate(client, electricity_payload).json()["audit"]["audit_id"]

        response = client.get(f"{BASE}/audit/{audit_id}")

        assert response.status_code == 200
        assert response.json()["id"] == audit_id

    def test_missing_record(self, client):
        assert client.get(f"{BASE}/audit/nope").status_code == 404

    def test_query(self, client, electricity_payload, compute_payload):
        _calculate(client, electricity_payload, user_context={"user_id": "dev-1"})
        _calculate(client, compute_payload, user_context={"user_id": "dev-2"})

        everything = client.get(f"{BASE}/audit").json()
        mine = client.get(f"{BASE}/audit", params={"user_id": "dev-2"}).json()
        compute = client.get(f"{BASE}/audit", params={"activity_type": "cloud_compute"}).json()

        assert everything["total_count"] == 2
        assert mine["total_count"] == 1
        assert compute["records"][0]["calculation_result"]["activity_type"] == "cloud_compute"

    def test_query_limit_is_bounded(self, client):
        assert client.get(f"{BASE}/audit", params={"limit": 5000}).status_code == 422

    def test_statistics(self, client, electricity_payload):
        _calculate(client, electricity_payload)
        _calculate(client, electricity_payload)

        stats = client.get(f"{BASE}/audit-statistics").json()

        assert stats["total_calculations"] == 2
        assert stats["activity_type_distribution"] == {"electricity": 2}


class TestMethodologyEndpoints:
    """Tests for methodology versioning over HTTP."""

    def test_listing(self, client):
        body = client.get(f"{BASE}/methodology").json()
        assert body["current"]["version"] == "1.0.0"
        assert [v["version"] for v in body["versions"]] == ["1.0.0"]

    def test_get_version(self, client):
        assert client.get(f"{BASE}/methodology/1.0.0").status_code == 200
        assert client.get(f"{BASE}/methodology/9.9.9").status_code == 404

    def test_create_and_deprecate(self, client):
        current = client.get(f"{BASE}/methodology").json()["current"]

        created = client.post(f"{BASE}/methodology", json={
            "methodology": current["methodology"],
            "changes": [{
                "field": "conservative_bias",
                "previous_value": 1.15,
                "new_value": 1.2,
                "reason": "Align with reporting guidance",
            }],
            "author": "analyst",
            "bump": "minor",
        })

        assert created.status_code == 201
        assert created.json()["version"] == "1.1.0"
        assert client.get(f"{BASE}/methodology").json()["current"]["version"] == "1.1.0"

        active = client.post(f"{BASE}/methodology/1.1.0/deprecate")
        assert active.status_code == 409

        unknown = client.post(f"{BASE}/methodology/9.9.9/deprecate")
        assert unknown.status_code == 404

        redirected = client.post(
            f"{BASE}/methodology/1.0.0/deprecate", json={"superseded_by": "1.1.0"},
        )
        assert redirected.status_code == 200
        assert redirected.json()["superseded_by"] == "1.1.0"

    def test_create_requires_author(self, client):
        current = client.get(f"{BASE}/methodology").json()["current"]
        response = client.post(f"{BASE}/methodology", json={
            "methodology": current["methodology"], "author": "",
        })
        assert response.status_code == 422


class TestHealthEndpoints:
    def test_source_health(self, client):
        body = client.get(f"{BASE}/sources/health").json()
        assert set(body) == {"grid_a", "grid_b"}
        assert body["grid_a"]["state"] == "closed"

    def test_health(self, client):
        body = client.get(f"{BASE}/health").json()
        assert body["status"] == "healthy"
        assert body["service"] == "carbon-calculation"
        assert body["sources"] == 2
        assert body["ledger"]["current_methodology"] == "1.0.0"
