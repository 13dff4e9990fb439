import asyncio
import json
import os
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DEBUG", "true")

from crm_contracts.main import app
from crm_contracts.services.contracts.lookups import LookupDirectory
from crm_contracts.services.contracts.report import ContractsReportService, get_contracts_service
from crm_contracts.services.contracts.repositories import InMemoryLeadRepository

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "contracts"


class _SyncASGIClient:
    """Minimal synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app):
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def close(self) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture
def client():
    """Create test client compatible with older/newer httpx releases."""
    try:
        test_client = TestClient(app)
        yield test_client
    except TypeError:
        fallback_client = _SyncASGIClient(app)
        try:
            yield fallback_client
        finally:
            fallback_client.close()


@pytest.fixture
def sample_payload() -> dict:
    """Five-table fixture shared by service, API and tool tests."""
    return json.loads((FIXTURES_DIR / "sample_leads.json").read_text(encoding="utf-8"))


@pytest.fixture
def repository(sample_payload) -> InMemoryLeadRepository:
    return InMemoryLeadRepository.from_payload(sample_payload)


@pytest.fixture
def service(repository) -> ContractsReportService:
    return ContractsReportService(repository, directory=LookupDirectory.load(repository))


@pytest.fixture
def api_service(service):
    """Route the FastAPI dependency to the fixture-backed service."""
    app.dependency_overrides[get_contracts_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_contracts_service, None)
