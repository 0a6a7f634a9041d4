"""
Clean, scannable console output for the crank keeper.

Pure formatting functions that emit structured log lines using box-drawing
characters. No side effects beyond logging. All data arrives via arguments.
"""

from __future__ import annotations

import argparse
import logging
import time

from config import Config
from keeper.models import CrankStatus, CycleReport

logger = logging.getLogger(__name__)

# Box-drawing characters
_TOP = "\u250c"  # ┌
_MID = "\u2502"  # │
_BOT = "\u2514"  # └
_DASH = "\u2500"  # ─
_VERT_SEP = "\u2502"  # │ (inline separator)


def _short(key: str, length: int = 8) -> str:
    """First *length* chars of a base58 key, with ellipsis if trimmed."""
    if len(key) <= length:
        return key
    return key[:length] + "\u2026"


def _mode_label(args: argparse.Namespace) -> str:
    if getattr(args, "once", False):
        return "ONCE"
    return "LOOP"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def print_startup(cfg: Config, args: argparse.Namespace, keeper_pubkey: str) -> None:
    """Compact config block emitted once after the banner."""
    logger.info(
        "  Mode: %-6s Network: %-8s RPC: %s",
        _mode_label(args), cfg.network, cfg.resolved_rpc_url,
    )
    logger.info("  Keeper: %s  Programs: %s", keeper_pubkey,
                "  ".join(_short(pid) for pid in cfg.program_ids))
    logger.info(
        "  Interval: %.1fs  Price cooldown: %.1fs  Attempts: %d  Priority fee: %d",
        cfg.crank_interval_sec,
        cfg.price_push_cooldown_sec,
        cfg.tx_max_attempts,
        cfg.priority_fee_micro_lamports,
    )


def print_discovery(count: int, admin_count: int, elapsed: float) -> None:
    logger.info(
        "  %s Discovered %d market%s (%d admin-oracle, %d external) in %.1fs",
        _TOP, count, "" if count == 1 else "s", admin_count, count - admin_count, elapsed,
    )


def print_cycle_summary(report: CycleReport) -> None:
    """One divider line per cycle with counts and timing."""
    ts = time.strftime("%H:%M:%S", time.localtime(report.started_at))
    label = f" Cycle {report.cycle} "
    right_pad = max(2, 60 - 2 - len(label) - len(ts) - 3)
    logger.info("%s%s%s %s %s", _DASH * 2, label, _DASH * right_pad, ts, _DASH * 2)

    if report.error:
        logger.info("  %s Cycle error: %s", _TOP, report.error)
    if report.added:
        logger.info("  %s New: %s", _MID, ", ".join(_short(m) for m in report.added))
    if report.retired:
        logger.info("  %s Retired: %s", _MID, ", ".join(_short(m) for m in report.retired))
    logger.info(
        "  %s Cranked %d/%d %s %d failed %s %.1fs",
        _BOT,
        report.summary.success,
        report.markets_active,
        _VERT_SEP,
        report.summary.failed,
        _VERT_SEP,
        report.elapsed_sec,
    )


def print_shutdown_summary(status: dict[str, CrankStatus], cycles: int, uptime_sec: float) -> None:
    """Per-market totals at shutdown."""
    total_ok = sum(st.success_count for st in status.values())
    total_failed = sum(st.failure_count for st in status.values())
    logger.info(
        "  %s Session: %d cycles %s %d markets %s %d ok / %d failed %s %.0fs",
        _TOP, cycles, _VERT_SEP, len(status), _VERT_SEP, total_ok, total_failed, _VERT_SEP, uptime_sec,
    )
    for market_id, st in status.items():
        logger.info(
            "  %s  %-10s ok=%-5d failed=%-5d%s",
            _MID, _short(market_id), st.success_count, st.failure_count,
            "" if st.active else "  (retired)",
        )
    logger.info("  %s", _BOT)
