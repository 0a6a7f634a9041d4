"""
Unit tests for monitor/display.py -- clean console output formatting.
"""

from __future__ import annotations

import argparse
import logging

from monitor.display import (
    print_startup,
    print_discovery,
    print_cycle_summary,
    print_shutdown_summary,
    _short,
)
from keeper.models import CrankStatus, CrankSummary, CycleReport
from config import Config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MARKET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
MARKET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def _default_args(**overrides):
    ns = argparse.Namespace(once=False, interval=None, json_log=None, no_status=False)
    for k, v in overrides.items():
        setattr(ns, k, v)
    return ns


def _report(**overrides) -> CycleReport:
    fields = dict(
        cycle=4,
        started_at=1_700_000_000.0,
        elapsed_sec=1.25,
        markets_tracked=3,
        markets_active=3,
        summary=CrankSummary(success=2, failed=1),
    )
    fields.update(overrides)
    return CycleReport(**fields)


def _collect_logs(caplog, func, *args, **kwargs):
    """Run *func* and return list of captured INFO-level messages."""
    with caplog.at_level(logging.INFO, logger="monitor.display"):
        func(*args, **kwargs)
    return [r.message for r in caplog.records if r.name == "monitor.display"]


# ---------------------------------------------------------------------------
# Tests: print_startup
# ---------------------------------------------------------------------------


class TestPrintStartup:
    def test_logs_mode_and_network(self, caplog):
        cfg = Config(network="testnet")
        msgs = _collect_logs(caplog, print_startup, cfg, _default_args(once=True), MARKET_A)
        joined = " ".join(msgs)
        assert "ONCE" in joined
        assert "testnet" in joined
        assert cfg.resolved_rpc_url in joined

    def test_loop_mode(self, caplog):
        msgs = _collect_logs(caplog, print_startup, Config(), _default_args(), MARKET_A)
        assert any("LOOP" in m for m in msgs)

    def test_logs_keeper_and_programs(self, caplog):
        cfg = Config(extra_program_ids=MARKET_B)
        msgs = _collect_logs(caplog, print_startup, cfg, _default_args(), MARKET_A)
        joined = " ".join(msgs)
        assert MARKET_A in joined
        assert _short(MARKET_B) in joined

    def test_logs_interval_and_cooldown(self, caplog):
        cfg = Config(crank_interval_sec=2.5, price_push_cooldown_sec=7.0)
        msgs = _collect_logs(caplog, print_startup, cfg, _default_args(), MARKET_A)
        joined = " ".join(msgs)
        assert "2.5s" in joined
        assert "7.0s" in joined


# ---------------------------------------------------------------------------
# Tests: print_discovery
# ---------------------------------------------------------------------------


class TestPrintDiscovery:
    def test_counts(self, caplog):
        msgs = _collect_logs(caplog, print_discovery, 5, 2, 0.8)
        assert len(msgs) == 1
        assert "5 markets" in msgs[0]
        assert "2 admin-oracle, 3 external" in msgs[0]

    def test_singular(self, caplog):
        msgs = _collect_logs(caplog, print_discovery, 1, 1, 0.1)
        assert "1 market " in msgs[0]


# ---------------------------------------------------------------------------
# Tests: print_cycle_summary
# ---------------------------------------------------------------------------


class TestPrintCycleSummary:
    def test_header_and_counts(self, caplog):
        msgs = _collect_logs(caplog, print_cycle_summary, _report())
        assert "Cycle 4" in msgs[0]
        assert "\u2500" in msgs[0]  # ─
        # Time is HH:MM:SS format
        assert msgs[0].count(":") >= 2
        assert "Cranked 2/3" in msgs[-1]
        assert "1 failed" in msgs[-1]

    def test_quiet_cycle_is_two_lines(self, caplog):
        msgs = _collect_logs(caplog, print_cycle_summary, _report())
        assert len(msgs) == 2

    def test_added_and_retired_listed(self, caplog):
        report = _report(added=(MARKET_A,), retired=(MARKET_B,))
        msgs = _collect_logs(caplog, print_cycle_summary, report)
        joined = " ".join(msgs)
        assert "New: " + _short(MARKET_A) in joined
        assert "Retired: " + _short(MARKET_B) in joined

    def test_error_shown(self, caplog):
        msgs = _collect_logs(caplog, print_cycle_summary, _report(error="rpc down"))
        assert any("rpc down" in m for m in msgs)


# ---------------------------------------------------------------------------
# Tests: print_shutdown_summary
# ---------------------------------------------------------------------------


class TestPrintShutdownSummary:
    def test_totals_and_rows(self, caplog):
        status = {
            MARKET_A: CrankStatus(last_crank_time=1.0, success_count=5, failure_count=1, active=True),
            MARKET_B: CrankStatus(last_crank_time=0.0, success_count=0, failure_count=2, active=False),
        }
        msgs = _collect_logs(caplog, print_shutdown_summary, status, 6, 61.0)
        assert "6 cycles" in msgs[0]
        assert "5 ok / 3 failed" in msgs[0]
        assert len(msgs) == 4
        assert "(retired)" in msgs[2]
        assert "(retired)" not in msgs[1]

    def test_empty(self, caplog):
        msgs = _collect_logs(caplog, print_shutdown_summary, {}, 0, 0.0)
        assert "0 markets" in msgs[0]


class TestShort:
    def test_short_key_unchanged(self):
        assert _short("abc") == "abc"

    def test_long_key_trimmed(self):
        assert _short(MARKET_A) == MARKET_A[:8] + "\u2026"
