"""
Off-chain USD price feeds keyed by token mint. Each feed returns a float quote
or None; network errors, bad payloads and missing fields never escape.
"""

from __future__ import annotations

import logging
import math
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT = 5.0
PRICE_SCALE = 1_000_000


class PriceFeed(Protocol):
    name: str

    def fetch_usd(self, asset_id: str) -> float | None: ...


def to_price_e6(quote: float) -> int:
    """USD quote -> fixed-point integer scaled by 1e6."""
    return round(quote * PRICE_SCALE)


def _parse_quote(value) -> float | None:
    """Accept a numeric or string quote; reject non-finite and non-positive values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        quote = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(quote) or to_price_e6(quote) <= 0:
        return None
    return quote


class DexScreenerFeed:
    """DexScreener token endpoint. Uses the most liquid pair's priceUsd."""

    name = "dexscreener"

    def __init__(self, host: str = "https://api.dexscreener.com", timeout: float = _TIMEOUT):
        self._host = host.rstrip("/")
        self._timeout = timeout

    def fetch_usd(self, asset_id: str) -> float | None:
        try:
            resp = httpx.get(f"{self._host}/latest/dex/tokens/{asset_id}", timeout=self._timeout)
            resp.raise_for_status()
            pairs = resp.json().get("pairs") or []
        except Exception as e:
            logger.debug("DexScreener fetch failed for %s: %s", asset_id, e)
            return None

        pairs = [p for p in pairs if isinstance(p, dict)]
        if not pairs:
            return None
        best = max(pairs, key=_pair_liquidity)
        return _parse_quote(best.get("priceUsd"))


def _pair_liquidity(pair: dict) -> float:
    liquidity = pair.get("liquidity")
    if not isinstance(liquidity, dict):
        return 0.0
    try:
        return float(liquidity.get("usd") or 0.0)
    except (TypeError, ValueError):
        return 0.0


class JupiterFeed:
    """Jupiter price API v2."""

    name = "jupiter"

    def __init__(self, host: str = "https://api.jup.ag", timeout: float = _TIMEOUT):
        self._host = host.rstrip("/")
        self._timeout = timeout

    def fetch_usd(self, asset_id: str) -> float | None:
        try:
            resp = httpx.get(f"{self._host}/price/v2", params={"ids": asset_id}, timeout=self._timeout)
            resp.raise_for_status()
            entry = (resp.json().get("data") or {}).get(asset_id) or {}
        except Exception as e:
            logger.debug("Jupiter fetch failed for %s: %s", asset_id, e)
            return None

        if not isinstance(entry, dict):
            return None
        return _parse_quote(entry.get("price"))
