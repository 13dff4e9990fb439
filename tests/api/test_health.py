from __future__ import annotations

from crm_contracts.main import _allowed_hosts, app
from crm_contracts.services.contracts.report import ContractsReportService, get_contracts_service
from crm_contracts.services.contracts.repositories import InMemoryLeadRepository


class _UnreachableRepository(InMemoryLeadRepository):
    def ping(self) -> bool:
        return False


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_check(client, api_service):
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


def test_readiness_fails_when_database_unreachable(client):
    service = ContractsReportService(_UnreachableRepository())
    app.dependency_overrides[get_contracts_service] = lambda: service
    try:
        response = client.get("/health/ready")
    finally:
        app.dependency_overrides.pop(get_contracts_service, None)

    assert response.status_code == 503


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert "Welcome" in response.json()["message"]


def test_production_hosts_exclude_test_client_host():
    assert _allowed_hosts(False) == ["localhost", "127.0.0.1"]
    assert _allowed_hosts(True) == ["*"]
