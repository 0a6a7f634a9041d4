"""
Keeper logging. Every record is tagged with the emitting component (last
segment of the logger name) and the market it concerns, if any, so one crank
cycle across many markets can be followed line by line.

Outputs:
  - stderr: compact colored lines, ``12:00:01 INF scheduler  [7xKXtg2C] Cranked ...``
  - file (always): full debug log with tracebacks at <log_dir>/keeper_<UTC stamp>.log
  - file (optional): ndjson, one object per record
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone

_TAGS = {
    logging.DEBUG: ("DBG", "2"),
    logging.INFO: ("INF", "36"),
    logging.WARNING: ("WRN", "33"),
    logging.ERROR: ("ERR", "31"),
    logging.CRITICAL: ("CRT", "1;31"),
}

# Transport chatter from the RPC and price-feed clients
_NOISY_LOGGERS = ("httpx", "httpcore", "solana")

_VERBOSE_FORMAT = "%(asctime)s %(levelname)-8s %(component)s:%(lineno)d %(market)s %(message)s"


class KeeperContextFilter(logging.Filter):
    """Fills ``component`` and ``market`` on every record; never drops one."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = record.name.rsplit(".", 1)[-1]
        if not getattr(record, "market", None):
            record.market = ""
        return True


def _short_market(record: logging.LogRecord) -> str:
    market = getattr(record, "market", "")
    return f"[{market[:8]}] " if market else ""


class ConsoleFormatter(logging.Formatter):
    """One line per record; exceptions shrink to ``Type: message``."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color and _supports_color()

    def _paint(self, code: str, text: str) -> str:
        return f"\033[{code}m{text}\033[0m" if self._use_color else text

    def format(self, record: logging.LogRecord) -> str:
        tag, color = _TAGS.get(record.levelno, ("???", "37"))
        component = getattr(record, "component", record.name.rsplit(".", 1)[-1])
        line = "{} {} {:<10} {}{}".format(
            self._paint("2", time.strftime("%H:%M:%S", time.localtime(record.created))),
            self._paint(color, tag),
            component,
            _short_market(record),
            record.getMessage(),
        )
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            line += "\n" + self._paint("31", f"    {type(exc).__name__}: {exc}")
        return line


class JSONFormatter(logging.Formatter):
    """ndjson records for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        market = getattr(record, "market", "")
        if market:
            entry["market"] = market
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["error"] = f"{type(exc).__name__}: {exc}"
        return json.dumps(entry, separators=(",", ":"))


def _attach(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(KeeperContextFilter())
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str | None = None,
) -> str:
    """
    Replace the root handlers with the keeper's console, verbose file and
    optional JSON outputs. ``level`` applies to the console only; the verbose
    file always records DEBUG. Returns the verbose log path.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    _attach(root, logging.StreamHandler(sys.stderr), getattr(logging, level.upper(), logging.INFO), ConsoleFormatter())

    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"keeper_{stamp}.log")
    _attach(root, logging.FileHandler(log_path, mode="a"), logging.DEBUG, logging.Formatter(_VERBOSE_FORMAT))

    if json_log_file:
        _attach(root, logging.FileHandler(json_log_file, mode="a"), logging.DEBUG, JSONFormatter())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
