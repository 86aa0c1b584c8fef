"""
HTTP 边界：校验顺序与错误文案、400 响应体格式、各端点的成功路径（服务层替换为假对象）。
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from houndmaster.api.server import app
from houndmaster.chains import Chain
from houndmaster.services import get_services
from houndmaster.services.contract_analyzer import MintAnalysisResult
from houndmaster.services.coordinator import AnalysisBatch, AnalysisOutcome
from houndmaster.services.listing_fetcher import ListingResult
from houndmaster.services.verification_store import ContractData

from conftest import ADDR_A, ADDR_B


class _FakeListings:
    def __init__(self):
        self.configs = []

    async def fetch_collections(self, config, now=None):
        self.configs.append(config)
        return ListingResult(recent=[], old=[], pages_fetched=1, partial=False)


class _FakeVerification:
    async def get_or_fetch_contract_data(self, addresses, chain):
        return {a.lower(): ContractData(address=a.lower(), chain=chain, balance="7") for a in addresses}


class _FakeCoordinator:
    def __init__(self):
        self.calls = []
        self.busy = set()

    async def analyze(self, address, chain, website_url=None):
        self.calls.append((address, chain, website_url))
        return AnalysisOutcome(address.lower(), chain, MintAnalysisResult("1", "ETH", "high", "ok"))

    async def analyze_all(self, addresses, chain, website_urls=None):
        self.calls.append((tuple(addresses), chain, website_urls))
        batch = AnalysisBatch(chain=chain, addresses=list(addresses))
        for a in addresses:
            batch.results[a.lower()] = AnalysisOutcome(a.lower(), chain, MintAnalysisResult.low("x"))
        return batch

    def is_analyzing(self, address, chain):
        return (address.lower(), chain) in self.busy


@pytest.fixture
def fakes():
    return SimpleNamespace(
        listings=_FakeListings(),
        verification=_FakeVerification(),
        coordinator=_FakeCoordinator(),
    )


@pytest.fixture
def client(fakes):
    app.dependency_overrides[get_services] = lambda: fakes
    yield TestClient(app)
    app.dependency_overrides.clear()


def _error(resp, status, message):
    assert resp.status_code == status
    assert resp.json() == {"error": message, "status": status}


class TestContractListValidation:
    @pytest.mark.parametrize("body,message", [
        ({"chain": "ethereum"}, "Contract addresses are required"),
        ({"contractAddresses": [], "chain": "ethereum"}, "Contract addresses are required"),
        ({"contractAddresses": ADDR_A, "chain": "ethereum"}, "Contract addresses are required"),
        ({"contractAddresses": ["0x123"]}, "Chain parameter is required"),
        ({"contractAddresses": [ADDR_A, "0x123"], "chain": "solana"},
         "Contract addresses must be an array of valid Ethereum addresses"),
        ({"contractAddresses": [ADDR_A], "chain": "solana"}, "Invalid chain specified"),
    ])
    def test_first_failing_check_wins(self, client, body, message):
        _error(client.post("/api/contract-data", json=body), 400, message)

    def test_success(self, client):
        resp = client.post("/api/contract-data", json={"contractAddresses": [ADDR_A], "chain": "ethereum"})
        assert resp.status_code == 200
        entry = resp.json()["results"][ADDR_A]
        assert entry["balance"] == "7"
        assert entry["explorerUrl"].endswith(ADDR_A)


class TestSingleContractValidation:
    @pytest.mark.parametrize("body,message", [
        ({"chain": "ethereum"}, "Contract address is required"),
        ({"address": ADDR_A}, "Chain parameter is required"),
        ({"address": "0xnope", "chain": "solana"}, "Invalid Ethereum address format"),
        ({"address": ADDR_A, "chain": "solana"}, "Invalid chain specified"),
        ({"address": ADDR_A, "chain": "ethereum", "websiteUrl": "not a url"}, "Invalid website URL format"),
    ])
    def test_first_failing_check_wins(self, client, body, message):
        _error(client.post("/api/on-chain-analysis", json=body), 400, message)

    def test_success_passes_url(self, client, fakes):
        resp = client.post(
            "/api/on-chain-analysis",
            json={"address": ADDR_A, "chain": "Ethereum", "websiteUrl": " https://p.xyz "},
        )
        assert resp.status_code == 200
        assert resp.json()["contractAnalysis"]["totalRaised"] == "1"
        assert fakes.coordinator.calls == [(ADDR_A, Chain.ETHEREUM, "https://p.xyz")]


class TestBatch:
    def test_url_for_unknown_address_rejected(self, client):
        body = {"addresses": [ADDR_A], "chain": "ethereum", "websiteUrls": {ADDR_B: "https://b.xyz"}}
        _error(
            client.post("/api/analysis/batch", json=body),
            400,
            "Contract addresses must be an array of valid Ethereum addresses",
        )

    def test_success(self, client, fakes):
        body = {"addresses": [ADDR_A, ADDR_B], "chain": "base", "websiteUrls": {ADDR_A: "https://a.xyz"}}
        resp = client.post("/api/analysis/batch", json=body)
        assert resp.status_code == 200
        data = resp.json()
        assert data["chain"] == "base"
        assert set(data["results"]) == {ADDR_A, ADDR_B}
        assert fakes.coordinator.calls[0][2] == {ADDR_A: "https://a.xyz"}


class TestListings:
    def test_missing_chain(self, client):
        _error(client.post("/api/listings", json={}), 400, "Chain parameter is required")

    def test_filters_forwarded(self, client, fakes):
        resp = client.post(
            "/api/listings",
            json={"chain": "ethereum", "filters": {"maxAgeMonths": 3, "minTotalCollections": 10}},
        )
        assert resp.status_code == 200
        assert resp.json()["recent"] == []
        config = fakes.listings.configs[0]
        assert config.max_age_months == 3
        assert config.min_total_collections == 10
        assert config.chain is Chain.ETHEREUM

    def test_bad_filter_type_is_400(self, client):
        resp = client.post("/api/listings", json={"chain": "ethereum", "filters": {"limit": "lots"}})
        assert resp.status_code == 400
        assert resp.json()["status"] == 400


class TestStatus:
    def test_reports_inflight(self, client, fakes):
        fakes.coordinator.busy.add((ADDR_A, Chain.ETHEREUM))
        resp = client.get("/api/analysis/status", params={"address": ADDR_A, "chain": "ethereum"})
        assert resp.json() == {"analyzing": True}
        resp = client.get("/api/analysis/status", params={"address": ADDR_B, "chain": "ethereum"})
        assert resp.json() == {"analyzing": False}

    def test_missing_address(self, client):
        _error(client.get("/api/analysis/status", params={"chain": "ethereum"}), 400, "Contract address is required")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_endpoint_exposes_request_counter(client):
    client.get("/api/analysis/status", params={"address": ADDR_A, "chain": "ethereum"})
    body = client.get("/metrics").text
    assert "houndmaster_http_requests_total" in body
    assert "/api/analysis/status" in body
