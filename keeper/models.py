"""
Data models for the keeper crank pipeline. Pure data, no behavior.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass
from typing import Protocol, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair


class PriceSource(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CACHED = "cached"


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Last-known on-chain configuration of one market (slab) account.
    All keys are base58 strings; index_feed_id is the 32-byte feed id as hex.
    """

    market_id: str
    oracle_authority: str
    index_feed_id: str
    collateral_asset: str
    program_id: str = ""


@dataclass(frozen=True)
class PriceEntry:
    price_e6: int
    source: PriceSource
    timestamp: float


@dataclass
class MarketCrankState:
    """Mutable per-market crank bookkeeping. Owned by CrankScheduler."""

    market_id: str
    snapshot: MarketSnapshot
    last_crank_time: float = 0.0
    success_count: int = 0
    failure_count: int = 0
    active: bool = True


@dataclass(frozen=True)
class CrankStatus:
    """Read-only view of one market's crank state."""

    last_crank_time: float
    success_count: int
    failure_count: int
    active: bool = True

    def to_dict(self) -> dict:
        return {
            "lastCrankTime": self.last_crank_time,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "active": self.active,
        }


@dataclass(frozen=True)
class CrankSummary:
    success: int
    failed: int


@dataclass(frozen=True)
class CycleReport:
    """Outcome of one discover + crank-all cycle."""

    cycle: int
    started_at: float
    elapsed_sec: float
    markets_tracked: int
    markets_active: int
    summary: CrankSummary
    added: tuple[str, ...] = ()
    retired: tuple[str, ...] = ()
    error: str = ""


class MarketRegistry(Protocol):
    """Source of the current market set."""

    def discover(self) -> list[MarketSnapshot]: ...


class Submitter(Protocol):
    """Signs and sends instructions; returns a signature or raises after retries."""

    def submit(self, instructions: Sequence[Instruction], signer: Keypair) -> str: ...

