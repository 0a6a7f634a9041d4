"""
Crank scheduler. Tracks per-market crank state, re-discovers markets each
cycle and cranks every active market in turn on a fixed-interval background
thread. Failures stay local to one market; a cycle-level error is logged and
the loop keeps going.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from keeper.events import CRANK_FAILURE, CRANK_SUCCESS, MARKET_DISCOVERED, MARKET_RETIRED, EventBus
from keeper.instructions import PERMISSIONLESS_CALLER, build_keeper_crank_ix
from keeper.models import (
    CrankStatus,
    CrankSummary,
    CycleReport,
    MarketCrankState,
    MarketRegistry,
    MarketSnapshot,
    Submitter,
)
from keeper.oracle_mode import is_admin_oracle, oracle_account_for
from keeper.price_resolver import PriceResolver

logger = logging.getLogger(__name__)


class CrankScheduler:
    """
    Owns the tracked-market map. Collaborators (registry, submitter, resolver,
    event bus) are injected so several schedulers can run side by side.
    """

    def __init__(
        self,
        registry: MarketRegistry,
        submitter: Submitter,
        resolver: PriceResolver,
        signer: Keypair,
        program_id: str,
        events: EventBus | None = None,
        interval_sec: float = 10.0,
        caller_index: int = PERMISSIONLESS_CALLER,
        allow_panic: bool = False,
        retire_missing: bool = True,
        on_cycle: Callable[[CycleReport], None] | None = None,
    ):
        self._registry = registry
        self._submitter = submitter
        self._resolver = resolver
        self._signer = signer
        self._keeper_key = str(signer.pubkey())
        self._program_id = program_id
        self._events = events or EventBus()
        self._interval = interval_sec
        self._caller_index = caller_index
        self._allow_panic = allow_panic
        self._retire_missing = retire_missing
        self._on_cycle = on_cycle

        self._markets: dict[str, MarketCrankState] = {}
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._cycle = 0
        self._last_added: tuple[str, ...] = ()
        self._last_retired: tuple[str, ...] = ()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ── Discovery ──

    def discover(self) -> list[MarketSnapshot]:
        """Sync tracked state with the registry. Counters survive rediscovery."""
        snapshots = self._registry.discover()
        added: list[str] = []
        retired: list[str] = []
        reactivated: list[str] = []

        with self._state_lock:
            current_ids = set()
            for snap in snapshots:
                current_ids.add(snap.market_id)
                state = self._markets.get(snap.market_id)
                if state is None:
                    self._markets[snap.market_id] = MarketCrankState(market_id=snap.market_id, snapshot=snap)
                    added.append(snap.market_id)
                    continue
                state.snapshot = snap
                if not state.active:
                    state.active = True
                    reactivated.append(snap.market_id)

            if self._retire_missing:
                for market_id, state in self._markets.items():
                    if state.active and market_id not in current_ids:
                        state.active = False
                        retired.append(market_id)

        for market_id in added:
            self._events.publish(MARKET_DISCOVERED, market_id, {})
        for market_id in reactivated:
            logger.info("Market %s reappeared, reactivated", market_id[:8])
        for market_id in retired:
            self._resolver.forget(market_id)
            self._events.publish(MARKET_RETIRED, market_id, {})
            logger.info("Market %s no longer in registry, retired", market_id[:8])

        self._last_added = tuple(added)
        self._last_retired = tuple(retired)
        if added:
            logger.info("Discovered %d new market(s), tracking %d", len(added), len(self._markets))
        return snapshots

    # ── Cranking ──

    def crank_market(self, market_id: str) -> bool:
        with self._state_lock:
            state = self._markets.get(market_id)
            snapshot = state.snapshot if state else None
        if state is None:
            logger.warning("Crank requested for unknown market %s", market_id)
            return False

        try:
            admin = is_admin_oracle(snapshot)
            if admin and snapshot.oracle_authority == self._keeper_key:
                # A failed push does not block the crank; the chain may hold a usable price
                self._resolver.push_price(market_id, snapshot)
            elif admin:
                logger.debug("Oracle authority %s is not this keeper, skipping price push",
                             snapshot.oracle_authority[:8], extra={"market": market_id})

            ix = build_keeper_crank_ix(
                program_id=Pubkey.from_string(snapshot.program_id or self._program_id),
                payer=self._signer.pubkey(),
                market=Pubkey.from_string(market_id),
                oracle=oracle_account_for(snapshot),
                caller_index=self._caller_index,
                allow_panic=self._allow_panic,
            )
            signature = self._submitter.submit([ix], self._signer)
        except Exception as e:
            error = str(e) or type(e).__name__
            with self._state_lock:
                state.failure_count += 1
            self._events.publish(CRANK_FAILURE, market_id, {"error": error})
            logger.error("Crank failed: %s", error, extra={"market": market_id})
            return False

        with self._state_lock:
            state.last_crank_time = time.time()
            state.success_count += 1
        self._events.publish(CRANK_SUCCESS, market_id, {"signature": signature})
        logger.info("Cranked (%s oracle) sig=%s", "admin" if admin else "external", signature[:16],
                    extra={"market": market_id})
        return True

    def crank_all(self) -> CrankSummary:
        """Crank every active market sequentially in tracking order."""
        with self._state_lock:
            targets = [mid for mid, st in self._markets.items() if st.active]

        success = failed = 0
        for market_id in targets:
            if self.crank_market(market_id):
                success += 1
            else:
                failed += 1
        return CrankSummary(success=success, failed=failed)

    # ── Cycle + loop ──

    def run_cycle(self) -> CycleReport | None:
        """
        One discover + crank_all pass. Returns None without doing anything when
        another cycle is still running.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous crank cycle still running, skipping tick")
            return None
        try:
            self._cycle += 1
            started = time.time()
            summary = CrankSummary(success=0, failed=0)
            error = ""
            self._last_added = ()
            self._last_retired = ()
            try:
                self.discover()
                summary = self.crank_all()
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.exception("Crank cycle %d failed: %s", self._cycle, error)

            with self._state_lock:
                tracked = len(self._markets)
                active = sum(1 for st in self._markets.values() if st.active)
            report = CycleReport(
                cycle=self._cycle,
                started_at=started,
                elapsed_sec=time.time() - started,
                markets_tracked=tracked,
                markets_active=active,
                summary=summary,
                added=self._last_added,
                retired=self._last_retired,
                error=error,
            )
        finally:
            self._cycle_lock.release()

        if self._on_cycle is not None:
            try:
                self._on_cycle(report)
            except Exception as e:
                logger.warning("Cycle hook failed: %s", e)
        return report

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.is_running:
            return
        # Each loop thread gets its own stop event; a stopped thread never revives
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._loop, args=(self._stop_event,), name="crank-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("Crank scheduler started (interval %.1fs)", self._interval)

    def stop(self, timeout: float | None = None) -> None:
        """
        Stop scheduling new cycles. By default waits for an in-flight cycle to
        finish; with *timeout* gives up waiting after that many seconds (the
        thread still exits once its cycle completes). No-op if stopped.
        """
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Crank scheduler thread still finishing a cycle after %.1fs", timeout)
        self._thread = None
        logger.info("Crank scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            self.run_cycle()

    # ── Observability ──

    def get_status(self) -> dict[str, CrankStatus]:
        with self._state_lock:
            return {
                mid: CrankStatus(
                    last_crank_time=st.last_crank_time,
                    success_count=st.success_count,
                    failure_count=st.failure_count,
                    active=st.active,
                )
                for mid, st in self._markets.items()
            }

    def get_snapshot(self, market_id: str) -> MarketSnapshot | None:
        with self._state_lock:
            state = self._markets.get(market_id)
            return state.snapshot if state else None

    @property
    def tracked_markets(self) -> list[str]:
        with self._state_lock:
            return list(self._markets)

    @property
    def cycle_count(self) -> int:
        return self._cycle
