#!/usr/bin/env python3
"""
Crank keeper -- single service script.

Wires the keeper together:
  1. Load config + keeper keypair
  2. Discover markets on-chain
  3. Every interval: re-discover, push admin-oracle prices, crank each market
  4. Write status.md and console summaries each cycle
  5. Stop cleanly on SIGINT/SIGTERM

Usage:
  uv run python run.py                  # run the crank loop
  uv run python run.py --once           # one discover + crank pass, then exit
  uv run python run.py --interval 30    # override CRANK_INTERVAL_SEC
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from dataclasses import dataclass

from pydantic import ValidationError
from solders.keypair import Keypair

from config import load_config, Config
from client.auth import KeypairError, build_keeper_keypair
from client.prices import DexScreenerFeed, JupiterFeed
from client.registry import ProgramMarketRegistry
from client.rpc import SolanaRpc
from client.submitter import TransactionSubmitter
from keeper.events import WILDCARD, Event, EventBus
from keeper.models import CycleReport, PriceSource
from keeper.oracle_mode import is_admin_oracle
from keeper.price_resolver import PriceResolver
from keeper.scheduler import CrankScheduler
from monitor.display import print_cycle_summary, print_discovery, print_shutdown_summary, print_startup
from monitor.logger import setup_logging
from monitor.status import StatusWriter

logger = logging.getLogger(__name__)


_BANNER = r"""
  ____                 _      _  __
 / ___|_ __ __ _ _ __ | | __ | |/ /___  ___ _ __   ___ _ __
| |   | '__/ _` | '_ \| |/ / | ' // _ \/ _ \ '_ \ / _ \ '__|
| |___| | | (_| | | | |   <  | . \  __/  __/ |_) |  __/ |
 \____|_|  \__,_|_| |_|_|\_\ |_|\_\___|\___| .__/ \___|_|
                                           |_|    v0.1
"""

_SHUTDOWN_POLL_SEC = 0.5


@dataclass
class Keeper:
    """Wired keeper components sharing one RPC client."""

    rpc: SolanaRpc
    events: EventBus
    resolver: PriceResolver
    scheduler: CrankScheduler


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Permissionless crank keeper")
    parser.add_argument("--once", action="store_true", help="Run one discover + crank cycle and exit")
    parser.add_argument("--interval", type=float, default=None, help="Override crank interval in seconds")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--no-status", action="store_true", help="Do not write the status.md file")
    return parser.parse_args()


def build_keeper(cfg: Config, signer: Keypair, on_cycle=None) -> Keeper:
    """Construct the keeper object graph from config."""
    rpc = SolanaRpc(cfg.resolved_rpc_url, timeout=cfg.rpc_timeout_sec)
    events = EventBus()
    submitter = TransactionSubmitter(
        rpc,
        max_attempts=cfg.tx_max_attempts,
        base_delay_sec=cfg.tx_base_delay_sec,
        max_delay_sec=cfg.tx_max_delay_sec,
        confirm_timeout_sec=cfg.tx_confirm_timeout_sec,
        confirm_poll_sec=cfg.tx_confirm_poll_sec,
        compute_unit_limit=cfg.compute_unit_limit,
        priority_fee_micro_lamports=cfg.priority_fee_micro_lamports,
        skip_preflight=cfg.tx_skip_preflight,
    )
    resolver = PriceResolver(
        feeds=[
            (PriceSource.PRIMARY, DexScreenerFeed(cfg.primary_price_host, timeout=cfg.price_timeout_sec)),
            (PriceSource.SECONDARY, JupiterFeed(cfg.secondary_price_host, timeout=cfg.price_timeout_sec)),
        ],
        submitter=submitter,
        signer=signer,
        program_id=cfg.program_id,
        events=events,
        cooldown_sec=cfg.price_push_cooldown_sec,
        max_history=cfg.price_history_size,
    )
    scheduler = CrankScheduler(
        registry=ProgramMarketRegistry(rpc, cfg.program_ids),
        submitter=submitter,
        resolver=resolver,
        signer=signer,
        program_id=cfg.program_id,
        events=events,
        interval_sec=cfg.crank_interval_sec,
        caller_index=cfg.crank_caller_index,
        allow_panic=cfg.crank_allow_panic,
        retire_missing=cfg.retire_missing_markets,
        on_cycle=on_cycle,
    )
    return Keeper(rpc=rpc, events=events, resolver=resolver, scheduler=scheduler)


def _log_event(event: Event) -> None:
    logger.debug("event %s market=%s data=%s", event.event, event.market_id, event.data)


def _oracle_modes(scheduler: CrankScheduler) -> dict[str, str]:
    modes: dict[str, str] = {}
    for market_id in scheduler.tracked_markets:
        snapshot = scheduler.get_snapshot(market_id)
        if snapshot is not None:
            modes[market_id] = "admin" if is_admin_oracle(snapshot) else "external"
    return modes


def _check_rpc(rpc: SolanaRpc) -> None:
    """Log RPC reachability and latency. Never fatal."""
    start = time.time()
    try:
        slot = rpc.get_slot()
    except Exception as e:
        logger.warning("RPC health check failed (%s): %s", rpc.url, e)
        return
    logger.info("  RPC ok: slot %d, latency %.0fms", slot, (time.time() - start) * 1000)


def main() -> None:
    args = parse_args()
    try:
        cfg = load_config()
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    if args.interval is not None:
        if args.interval <= 0:
            logger.error("--interval must be positive")
            sys.exit(1)
        cfg = cfg.model_copy(update={"crank_interval_sec": args.interval})

    try:
        signer = build_keeper_keypair(cfg)
    except KeypairError as e:
        logger.error("%s", e)
        logger.error("Set CRANK_KEYPAIR to a base58 secret key or a JSON byte array.")
        sys.exit(1)

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip("\n"))
    logger.info("  Log file: %s", log_file_path)
    print_startup(cfg, args, str(signer.pubkey()))

    status_writer = None
    if cfg.status_file and not args.no_status:
        status_writer = StatusWriter(file_path=cfg.status_file, network=cfg.network)
        logger.debug("Status writer initialized (%s, last %d cycles)", cfg.status_file, status_writer.max_history)

    def on_cycle(report: CycleReport) -> None:
        print_cycle_summary(report)
        if status_writer is not None:
            status_writer.write_cycle(report, keeper.scheduler.get_status(), _oracle_modes(keeper.scheduler))

    keeper = build_keeper(cfg, signer, on_cycle=on_cycle)
    keeper.events.subscribe(WILDCARD, _log_event)
    session_start = time.time()

    _check_rpc(keeper.rpc)

    # Initial discovery so the first tick already knows the market set
    discover_start = time.time()
    try:
        markets = keeper.scheduler.discover()
        admin_count = sum(1 for m in markets if is_admin_oracle(m))
        print_discovery(len(markets), admin_count, time.time() - discover_start)
    except Exception as e:
        logger.error("Initial market discovery failed, will retry each cycle: %s", e)

    if args.once:
        keeper.scheduler.run_cycle()
        print_shutdown_summary(keeper.scheduler.get_status(), keeper.scheduler.cycle_count,
                               time.time() - session_start)
        return

    # Graceful shutdown handler
    shutdown_requested = False

    def handle_signal(signum, frame):
        nonlocal shutdown_requested
        if not shutdown_requested:
            logger.info("Received signal %d, shutting down...", signum)
        shutdown_requested = True

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    keeper.scheduler.start()
    try:
        while not shutdown_requested:
            time.sleep(_SHUTDOWN_POLL_SEC)
    finally:
        # Blocks until an in-flight cycle completes
        keeper.scheduler.stop()
        print_shutdown_summary(keeper.scheduler.get_status(), keeper.scheduler.cycle_count,
                               time.time() - session_start)


if __name__ == "__main__":
    main()
