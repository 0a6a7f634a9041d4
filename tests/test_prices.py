"""
Unit tests for client/prices.py -- DexScreener and Jupiter price feeds.
"""

import httpx
import respx

from client.prices import DexScreenerFeed, JupiterFeed, to_price_e6

DEX_HOST = "https://dex.test"
JUP_HOST = "https://jup.test"
MINT = "So11111111111111111111111111111111111111112"


class TestToPriceE6:
    def test_rounds_to_six_decimals(self):
        assert to_price_e6(1.5) == 1_500_000
        assert to_price_e6(123.4567894) == 123_456_789


class TestDexScreenerFeed:
    @respx.mock
    def test_uses_most_liquid_pair(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(return_value=httpx.Response(200, json={
            "pairs": [
                {"priceUsd": "140.10", "liquidity": {"usd": 1_000}},
                {"priceUsd": "142.25", "liquidity": {"usd": 5_000_000}},
                {"priceUsd": "139.00"},
            ],
        }))
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) == 142.25

    @respx.mock
    def test_no_pairs_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(
            return_value=httpx.Response(200, json={"pairs": None}),
        )
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_missing_price_field_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(
            return_value=httpx.Response(200, json={"pairs": [{"liquidity": {"usd": 10}}]}),
        )
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_unparsable_price_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(
            return_value=httpx.Response(200, json={"pairs": [{"priceUsd": "n/a"}]}),
        )
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_http_error_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(return_value=httpx.Response(500))
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_connection_error_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(side_effect=httpx.ConnectError("refused"))
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_non_json_body_returns_none(self):
        respx.get(f"{DEX_HOST}/latest/dex/tokens/{MINT}").mock(
            return_value=httpx.Response(200, text="<html>rate limited</html>"),
        )
        assert DexScreenerFeed(DEX_HOST).fetch_usd(MINT) is None


class TestJupiterFeed:
    @respx.mock
    def test_reads_price(self):
        route = respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(return_value=httpx.Response(200, json={
            "data": {MINT: {"id": MINT, "type": "derivedPrice", "price": "141.7"}},
        }))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) == 141.7
        assert route.calls.last.request.url.params["ids"] == MINT

    @respx.mock
    def test_numeric_price_accepted(self):
        respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(return_value=httpx.Response(200, json={
            "data": {MINT: {"price": 0.25}},
        }))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) == 0.25

    @respx.mock
    def test_unknown_mint_returns_none(self):
        respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(return_value=httpx.Response(200, json={"data": {MINT: None}}))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_zero_price_returns_none(self):
        respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(return_value=httpx.Response(200, json={
            "data": {MINT: {"price": "0"}},
        }))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_non_finite_price_returns_none(self):
        respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(return_value=httpx.Response(200, json={
            "data": {MINT: {"price": "NaN"}},
        }))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) is None

    @respx.mock
    def test_timeout_returns_none(self):
        respx.get(url__startswith=f"{JUP_HOST}/price/v2").mock(side_effect=httpx.ReadTimeout("slow"))
        assert JupiterFeed(JUP_HOST).fetch_usd(MINT) is None
