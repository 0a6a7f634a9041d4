"""
Rolling markdown status file. Overwrites status.md each cycle with:
  - Current state: network, uptime, cycle, market counts, session totals
  - Markets: one row per tracked market from the scheduler's status map
  - History: last N cycles
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from keeper.models import CrankStatus, CycleReport


_GUIDE: list[str] = [
    "## How the Keeper Works",
    "",
    "The keeper runs a fixed-interval loop. Each iteration is called a **cycle**:",
    "",
    "1. **Discover** -- scans the program's slab accounts. New markets start with zero counters;",
    "   markets that vanished are retired (kept in the table, no longer cranked).",
    "2. **Price** -- admin-oracle markets get a fresh price pushed on-chain (primary feed, then",
    "   secondary, then the last cached price). Pushes are rate-limited per market.",
    "3. **Crank** -- every active market is cranked in turn. One market failing never stops the rest.",
    "",
    "## Field Reference",
    "",
    "| Column | Meaning |",
    "|--------|---------|",
    "| Mode | admin = keeper pushes the price. external = Pyth push feed supplies it. |",
    "| Last crank | Wall-clock time of the last successful crank (-- if never). |",
    "| OK / Failed | Successful / failed crank attempts since the keeper started. |",
    "| Active | no = market dropped out of discovery and is no longer cranked. |",
    "",
    "---",
]


@dataclass
class CycleSnapshot:
    """One cycle's summary for the history table."""

    cycle: int
    timestamp: float
    elapsed_sec: float
    markets_active: int
    cranked: int
    failed: int
    error: str


@dataclass
class StatusWriter:
    """Writes a rolling status.md file each cycle."""

    file_path: str = "status.md"
    max_history: int = 20
    network: str = "devnet"

    _session_start: float = field(default_factory=time.time)
    _history: list[CycleSnapshot] = field(default_factory=list)
    _total_ok: int = 0
    _total_failed: int = 0

    def write_cycle(
        self,
        report: CycleReport,
        status: dict[str, CrankStatus],
        modes: dict[str, str] | None = None,
    ) -> None:
        """Overwrite the status file with current state + rolling history."""
        self._total_ok += report.summary.success
        self._total_failed += report.summary.failed

        self._history.append(CycleSnapshot(
            cycle=report.cycle,
            timestamp=report.started_at + report.elapsed_sec,
            elapsed_sec=report.elapsed_sec,
            markets_active=report.markets_active,
            cranked=report.summary.success,
            failed=report.summary.failed,
            error=report.error,
        ))
        if len(self._history) > self.max_history:
            self._history = self._history[-self.max_history :]

        lines = self._render(report, status, modes or {})
        with open(self.file_path, "w") as f:
            f.write("\n".join(lines) + "\n")

    def _render(
        self,
        report: CycleReport,
        status: dict[str, CrankStatus],
        modes: dict[str, str],
    ) -> list[str]:
        uptime = _format_duration(time.time() - self._session_start)
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())

        lines: list[str] = []
        lines.append("# Crank Keeper -- Status")
        lines.append("")
        lines.append(f"*Updated {ts}*")
        lines.append("")
        lines.extend(_GUIDE)
        lines.append("")

        # ── Current State ──
        lines.append("## Current State")
        lines.append("")
        state_rows: list[list[str]] = [
            ["Network", self.network],
            ["Uptime", uptime],
            ["Cycle", str(report.cycle)],
            ["Markets tracked", str(report.markets_tracked)],
            ["Markets active", str(report.markets_active)],
            ["Cranks (session)", f"{self._total_ok} ok / {self._total_failed} failed"],
        ]
        if report.error:
            state_rows.append(["Last cycle error", _truncate(report.error, 60)])
        lines.extend(_padded_table(["Field", "Value"], state_rows))
        lines.append("")

        # ── Markets ──
        lines.append("## Markets")
        lines.append("")
        if status:
            market_rows: list[list[str]] = []
            for market_id, st in status.items():
                last = (
                    time.strftime("%H:%M:%S", time.localtime(st.last_crank_time))
                    if st.last_crank_time else "--"
                )
                market_rows.append([
                    _truncate(market_id, 16),
                    modes.get(market_id, "--"),
                    last,
                    str(st.success_count),
                    str(st.failure_count),
                    "yes" if st.active else "no",
                ])
            lines.extend(_padded_table(
                ["Market", "Mode", "Last crank", "OK", "Failed", "Active"],
                market_rows,
            ))
        else:
            lines.append("*No markets tracked.*")
        lines.append("")

        # ── Rolling History ──
        lines.append("## Recent Cycles")
        lines.append("")
        if self._history:
            history_rows: list[list[str]] = []
            for snap in reversed(self._history):
                t = time.strftime("%H:%M:%S", time.localtime(snap.timestamp))
                history_rows.append([
                    str(snap.cycle),
                    t,
                    f"{snap.elapsed_sec:.1f}s",
                    str(snap.markets_active),
                    str(snap.cranked),
                    str(snap.failed),
                    _truncate(snap.error, 40) if snap.error else "--",
                ])
            lines.extend(_padded_table(
                ["Cycle", "Time", "Took", "Active", "Cranked", "Failed", "Error"],
                history_rows,
            ))
            lines.append("")
        else:
            lines.append("*No history yet.*")
            lines.append("")

        return lines


def _padded_table(headers: list[str], rows: list[list[str]]) -> list[str]:
    """Build a Markdown table with evenly padded columns."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def _fmt(cells: list[str]) -> str:
        parts = [f" {c:<{widths[i]}} " for i, c in enumerate(cells)]
        return "|" + "|".join(parts) + "|"

    lines = [_fmt(headers)]
    lines.append("|" + "|".join("-" * (w + 2) for w in widths) + "|")
    for row in rows:
        lines.append(_fmt(row))
    return lines


def _format_duration(seconds: float) -> str:
    """Format seconds into a human-readable duration string."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes = int(seconds) // 60
    secs = seconds - minutes * 60
    if minutes < 60:
        return f"{minutes}m {secs:.0f}s"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m"


def _truncate(text: str, max_len: int) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
