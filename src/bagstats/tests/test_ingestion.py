"""Tests for the upstream HTTP clients using an in-memory session."""

from __future__ import annotations

from typing import Any, List, Optional

import pytest
import requests

from bagstats.config import settings
from bagstats.errors import UpstreamError
from bagstats.ingestion.bags_api import ClaimStatsClient, PositionsClient, _to_lamports
from bagstats.ingestion.pricing import PriceOracle
from bagstats.ingestion.token_metadata import MetadataClient
from bagstats.monitoring.metrics import METRICS

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, *responses: FakeResponse) -> None:
        self.responses = list(responses)
        self.calls: List[dict] = []

    def get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None, timeout: Any = None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return self.responses.pop(0)


def _config(**overrides) -> settings.DataSourceConfig:
    return settings.DataSourceConfig(**overrides)


def test_positions_client_parses_response_envelope() -> None:
    session = FakeSession(
        FakeResponse(
            {
                "success": True,
                "response": [
                    {"baseMint": "MintA", "totalClaimableLamportsUserShare": "2000000000"},
                    {"baseMint": "MintB", "totalClaimableLamportsUserShare": 500_000_000},
                    {"totalClaimableLamportsUserShare": 1},
                    {"baseMint": "MintC"},
                ],
            }
        )
    )
    client = PositionsClient(_config(bags_api_key="secret"), session=session)

    positions = client.fetch_positions(WALLET)

    assert [(p.mint, p.claimable_lamports) for p in positions] == [
        ("MintA", 2_000_000_000),
        ("MintB", 500_000_000),
        ("MintC", 0),
    ]
    call = session.calls[0]
    assert call["url"] == "https://public-api-v2.bags.fm/api/v1/token-launch/claimable-positions"
    assert call["params"] == {"wallet": WALLET}
    assert call["headers"]["x-api-key"] == "secret"
    assert call["timeout"] == 10.0


def test_positions_client_raises_upstream_error() -> None:
    client = PositionsClient(_config(), session=FakeSession(FakeResponse({"error": "nope"}, status_code=500)))
    with pytest.raises(UpstreamError) as excinfo:
        client.fetch_positions(WALLET)
    assert excinfo.value.status_code == 500

    client = PositionsClient(_config(), session=FakeSession(FakeResponse({"success": False, "error": "bad wallet"})))
    with pytest.raises(UpstreamError, match="bad wallet"):
        client.fetch_positions(WALLET)

    client = PositionsClient(_config(), session=FakeSession(FakeResponse(ValueError("not json"))))
    with pytest.raises(UpstreamError):
        client.fetch_positions(WALLET)


def test_claim_stats_client_finds_wallet_entry() -> None:
    payload = {
        "success": True,
        "response": [
            {"wallet": "someone-else", "totalClaimed": "7"},
            {"wallet": WALLET, "totalClaimed": "1500000000"},
        ],
    }
    session = FakeSession(FakeResponse(payload), FakeResponse(payload))
    client = ClaimStatsClient(_config(), session=session)

    assert client.claimed_by("MintA", WALLET) == 1_500_000_000
    assert client.claimed_by("MintA", "absent-wallet") == 0
    assert session.calls[0]["params"] == {"tokenMint": "MintA"}


def test_to_lamports_handles_loose_inputs() -> None:
    assert _to_lamports("42") == 42
    assert _to_lamports(None) == 0
    assert _to_lamports("1e3") == 1000
    assert _to_lamports("garbage") == 0
    assert _to_lamports(-5) == 0


def test_price_oracle_caches_and_falls_back() -> None:
    METRICS.reset()
    session = FakeSession(FakeResponse({"solana": {"usd": 150.5}}), FakeResponse({}, status_code=429))
    oracle = PriceOracle(_config(), session=session)

    assert oracle.get_sol_price() == 150.5
    assert oracle.get_sol_price() == 150.5
    assert len(session.calls) == 1

    # A failed refresh keeps the last known price.
    assert oracle.refresh() == 150.5
    assert METRICS.get("earnings.partial.price") == 1
    METRICS.reset()


def test_price_oracle_uses_configured_fallback_without_history() -> None:
    session = FakeSession(FakeResponse({"solana": {}}), FakeResponse({"solana": {"usd": 0}}))
    oracle = PriceOracle(_config(fallback_sol_price=200.0), session=session)

    assert oracle.get_sol_price() == 200.0
    assert oracle.get_sol_price(fallback=123.0) == 123.0
    assert oracle.last_known_price is None


def test_metadata_client_maps_fields_and_caches_not_found() -> None:
    session = FakeSession(
        FakeResponse({"name": "Alpha", "symbol": "ALP", "logoURI": "https://logo"}),
        FakeResponse(None, status_code=404),
    )
    client = MetadataClient(_config(), session=session)

    meta = client.fetch("MintA")
    assert (meta.name, meta.symbol, meta.logo_uri) == ("Alpha", "ALP", "https://logo")
    assert client.fetch("MintA") is meta
    assert client.fetch("MintB") is None
    assert client.fetch("MintB") is None
    assert [call["url"] for call in session.calls] == [
        "https://api.jup.ag/tokens/v1/MintA",
        "https://api.jup.ag/tokens/v1/MintB",
    ]


def test_metadata_client_raises_on_server_error() -> None:
    client = MetadataClient(_config(), session=FakeSession(FakeResponse({}, status_code=503)))
    with pytest.raises(UpstreamError):
        client.fetch("MintA")
