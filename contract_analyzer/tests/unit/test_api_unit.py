"""
Unit tests for the HTTP API.

Services are registered through the dependency setters; app startup is not
run, so no network or Redis access happens.

Tests cover:
- POST /contracts/analyze success and every error status
- GET /contracts/{contract_id}
- Error envelope, request IDs, CORS
- Health endpoints
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from contract_analyzer.main import app
from contract_analyzer.models.schemas import ContractStatus
from contract_analyzer.services.analysis_service import ContractAnalysisService
from contract_analyzer.services.api_resilience import completion_breaker
from contract_analyzer.services.extraction_strategies import ExtractionDispatcher
from contract_analyzer.services.identity import parse_bearer_token
from contract_analyzer.utils.dependencies import (
    reset_services,
    set_analysis_service,
    set_contract_store,
    set_identity_service,
)
from contract_analyzer.utils.errors import StorageUnavailable, Unauthenticated
from contract_analyzer.workflows.contract_analysis_workflow import ContractAnalysisWorkflow

OWNER_AUTH = {"Authorization": "Bearer owner-token"}
OTHER_AUTH = {"Authorization": "Bearer other-token"}


class FakeIdentityService:
    """Resolves a fixed set of tokens."""

    def __init__(self, identities):
        self.identities = identities

    async def resolve(self, authorization):
        token = parse_bearer_token(authorization)
        identity = self.identities.get(token)
        if identity is None:
            raise Unauthenticated("Invalid or expired token")
        return identity


@pytest.fixture
def registered_services(contract_store, mock_blob_store, mock_completion_client, owner, other_user):
    workflow = ContractAnalysisWorkflow(
        blob_store=mock_blob_store,
        dispatcher=ExtractionDispatcher(mock_completion_client),
    )
    set_contract_store(contract_store)
    set_identity_service(FakeIdentityService({"owner-token": owner, "other-token": other_user}))
    set_analysis_service(ContractAnalysisService(store=contract_store, workflow=workflow))
    yield
    reset_services()


@pytest.fixture
def client(registered_services):
    return TestClient(app)


@pytest_asyncio.fixture
async def seeded_store(contract_store, make_record):
    await contract_store.create(make_record())
    return contract_store


class TestAnalyzeEndpoint:
    """Test POST /contracts/analyze."""

    @pytest.mark.asyncio
    async def test_analyze_success(self, client, seeded_store):
        response = client.post("/contracts/analyze", json={"contract_id": "contract-1"}, headers=OWNER_AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "contract_id": "contract-1",
            "status": "analyzed",
        }
        record = await seeded_store.get("contract-1")
        assert record.status == ContractStatus.ANALYZED

    def test_missing_authorization(self, client):
        response = client.post("/contracts/analyze", json={"contract_id": "contract-1"})

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Missing or invalid Authorization header",
        }

    def test_invalid_token(self, client):
        response = client.post(
            "/contracts/analyze",
            json={"contract_id": "contract-1"},
            headers={"Authorization": "Bearer revoked"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"

    def test_missing_contract_id(self, client):
        response = client.post("/contracts/analyze", json={}, headers=OWNER_AUTH)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "contract_id is required"}

    def test_empty_body(self, client):
        response = client.post("/contracts/analyze", headers=OWNER_AUTH)

        assert response.status_code == 400
        assert response.json()["error"] == "contract_id is required"

    def test_malformed_json(self, client):
        response = client.post(
            "/contracts/analyze",
            content=b'{"contract_id": ',
            headers={**OWNER_AUTH, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body"

    def test_authentication_checked_before_body(self, client):
        response = client.post(
            "/contracts/analyze",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401

    def test_non_object_body(self, client):
        response = client.post("/contracts/analyze", json=["contract-1"], headers=OWNER_AUTH)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, client, seeded_store):
        response = client.post("/contracts/analyze", json={"contract_id": "contract-1"}, headers=OTHER_AUTH)

        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Forbidden"}
        record = await seeded_store.get("contract-1")
        assert record.status == ContractStatus.UPLOADED

    def test_contract_not_found(self, client):
        response = client.post("/contracts/analyze", json={"contract_id": "missing"}, headers=OWNER_AUTH)

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "Contract not found"

    @pytest.mark.asyncio
    async def test_download_failure_marks_error(self, client, seeded_store, mock_blob_store):
        mock_blob_store.download = AsyncMock(
            side_effect=StorageUnavailable("Failed to download file: Object not found")
        )

        response = client.post("/contracts/analyze", json={"contract_id": "contract-1"}, headers=OWNER_AUTH)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to download file: Object not found"
        record = await seeded_store.get("contract-1")
        assert record.status == ContractStatus.ERROR
        assert record.error == "Failed to download file: Object not found"

    @pytest.mark.asyncio
    async def test_unexpected_error_envelope(self, registered_services, seeded_store, mock_completion_client):
        mock_completion_client.complete_json = AsyncMock(side_effect=RuntimeError("socket closed"))
        client = TestClient(app, raise_server_exceptions=False)

        response = client.post("/contracts/analyze", json={"contract_id": "contract-1"}, headers=OWNER_AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["error"] == "Unexpected error during analysis"
        record = await seeded_store.get("contract-1")
        assert record.error == "socket closed"


class TestGetContractEndpoint:
    """Test GET /contracts/{contract_id}."""

    @pytest.mark.asyncio
    async def test_returns_analyzed_record(self, client, seeded_store):
        client.post("/contracts/analyze", json={"contract_id": "contract-1"}, headers=OWNER_AUTH)

        response = client.get("/contracts/contract-1", headers=OWNER_AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        contract = body["contract"]
        assert contract["status"] == "analyzed"
        assert contract["risk_level"] == "medium"
        assert contract["error"] is None
        assert contract["analysis"]["purchasePrice"] == "$450,000"
        assert contract["analysis"]["keyTerms"][0]["term"] == "Purchase Price"

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, client, seeded_store):
        response = client.get("/contracts/contract-1", headers=OTHER_AUTH)

        assert response.status_code == 403

    def test_requires_authentication(self, client):
        response = client.get("/contracts/contract-1")

        assert response.status_code == 401


class TestRequestContext:
    """Test request ID propagation."""

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        response = client.get("/")

        assert len(response.headers["X-Request-ID"]) == 36

    def test_request_id_on_error_responses(self, client):
        response = client.post("/contracts/analyze", json={}, headers={"X-Request-ID": "req-err"})

        assert response.status_code == 401
        assert response.headers["X-Request-ID"] == "req-err"


class TestCors:
    """Test CORS configuration."""

    def test_preflight_allowed(self, client):
        response = client.options(
            "/contracts/analyze",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Authorization, Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]


class TestHealthEndpoints:
    """Test health and status endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "Contract Analysis API"

    def test_health_reports_breakers(self, client):
        response = client.get("/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["contract_store"] == "up"
        assert set(body["circuit_breakers"]) == {"completion", "storage"}
        assert body["circuit_breakers"]["completion"]["state"] == "closed"

    def test_health_degraded_when_breaker_open(self, client):
        completion_breaker.open()

        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["circuit_breakers"]["completion"]["state"] == "open"

    def test_services_not_initialized(self):
        reset_services()
        client = TestClient(app)

        response = client.post("/contracts/analyze", json={"contract_id": "x"}, headers=OWNER_AUTH)

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert response.json()["error"] == "Identity service not initialized"

        health = client.get("/health").json()
        assert health["services"]["contract_store"] == "down"

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json()["success"] is False
