"""
Price resolver for admin-oracle markets.

fetch_price walks an ordered list of (PriceSource, feed) pairs and records the
first usable quote in a bounded per-market history. When every feed fails,
the newest recorded entry is served again tagged CACHED. push_price wraps that
with a per-market cooldown and submits the price-push instruction on-chain.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from client.prices import PriceFeed, to_price_e6
from keeper.events import PRICE_UPDATED, EventBus
from keeper.instructions import build_push_price_ix
from keeper.models import MarketSnapshot, PriceEntry, PriceSource, Submitter

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SEC = 5.0
DEFAULT_MAX_HISTORY = 100


class PriceResolver:
    """Owns per-market price history and the push cooldown clock."""

    def __init__(
        self,
        feeds: Sequence[tuple[PriceSource, PriceFeed]],
        submitter: Submitter,
        signer: Keypair,
        program_id: str,
        events: EventBus | None = None,
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        if any(source is PriceSource.CACHED for source, _ in feeds):
            raise ValueError("CACHED is reserved for the history fallback")
        self._feeds = list(feeds)
        self._submitter = submitter
        self._signer = signer
        self._program_id = program_id
        self._events = events or EventBus()
        self._cooldown_sec = cooldown_sec
        self._max_history = max_history

        self._lock = threading.Lock()
        self._history: dict[str, deque[PriceEntry]] = {}
        self._last_push: dict[str, float] = {}

    def fetch_price(self, asset_id: str, market_id: str) -> PriceEntry | None:
        """Resolve a price through the feed chain, falling back to the last recorded entry."""
        for source, feed in self._feeds:
            quote = feed.fetch_usd(asset_id)
            if quote is None:
                logger.debug("%s: %s feed unavailable for %s", market_id[:8], feed.name, asset_id[:8])
                continue
            entry = PriceEntry(price_e6=to_price_e6(quote), source=source, timestamp=time.time())
            self._record(market_id, entry)
            return entry

        latest = self.get_current_price(market_id)
        if latest is None:
            logger.warning("%s: no price from any feed and no history", market_id[:8])
            return None
        logger.warning(
            "%s: all feeds failed, reusing cached price %d", market_id[:8], latest.price_e6,
        )
        return PriceEntry(price_e6=latest.price_e6, source=PriceSource.CACHED, timestamp=latest.timestamp)

    def push_price(self, market_id: str, snapshot: MarketSnapshot) -> bool:
        """
        Resolve and push a price on-chain. Returns False without doing anything
        inside the cooldown window; the clock only advances on a landed push.
        """
        now = time.time()
        with self._lock:
            last = self._last_push.get(market_id)
        if last is not None and now - last < self._cooldown_sec:
            logger.debug("%s: price push skipped (cooldown %.1fs left)",
                         market_id[:8], self._cooldown_sec - (now - last))
            return False

        entry = self.fetch_price(snapshot.collateral_asset, market_id)
        if entry is None:
            return False

        try:
            program = Pubkey.from_string(snapshot.program_id or self._program_id)
            ix = build_push_price_ix(
                program_id=program,
                payer=self._signer.pubkey(),
                market=Pubkey.from_string(market_id),
                price_e6=entry.price_e6,
                timestamp=int(time.time()),
            )
            signature = self._submitter.submit([ix], self._signer)
        except Exception as e:
            logger.error("Price push failed: %s", e, extra={"market": market_id})
            return False

        with self._lock:
            self._last_push[market_id] = time.time()
        logger.info("Pushed price %d (%s) sig=%s", entry.price_e6, entry.source.value, signature[:16],
                    extra={"market": market_id})
        self._events.publish(PRICE_UPDATED, market_id, {
            "priceE6": entry.price_e6,
            "source": entry.source.value,
        })
        return True

    def get_current_price(self, market_id: str) -> PriceEntry | None:
        with self._lock:
            history = self._history.get(market_id)
            return history[-1] if history else None

    def get_price_history(self, market_id: str) -> list[PriceEntry]:
        with self._lock:
            return list(self._history.get(market_id, ()))

    def forget(self, market_id: str) -> None:
        """Drop history and cooldown state for a market that left the registry."""
        with self._lock:
            self._history.pop(market_id, None)
            self._last_push.pop(market_id, None)

    def _record(self, market_id: str, entry: PriceEntry) -> None:
        with self._lock:
            history = self._history.get(market_id)
            if history is None:
                history = deque(maxlen=self._max_history)
                self._history[market_id] = history
            history.append(entry)
