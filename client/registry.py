"""
On-chain market registry. Enumerates slab accounts owned by the futures
program(s) via getProgramAccounts and parses the fields the keeper needs.
"""

from __future__ import annotations

import logging

import base58
from solders.pubkey import Pubkey

from client.rpc import SolanaRpc
from keeper.models import MarketSnapshot

logger = logging.getLogger(__name__)

# "PERCOLAT" stored as a little-endian u64
SLAB_MAGIC = b"TALOCREP"

# Data sizes of the small / medium / large slab tiers
SLAB_TIER_SIZES = (65_192, 257_288, 1_025_672)

HEADER_LEN = 104
CONFIG_OFFSET = HEADER_LEN
_COLLATERAL_MINT_OFF = CONFIG_OFFSET + 0
_INDEX_FEED_ID_OFF = CONFIG_OFFSET + 64
_ORACLE_AUTHORITY_OFF = CONFIG_OFFSET + 256

# Header + config + the leading engine fields; enough for parsing
SLICE_LENGTH = 1700


class SlabParseError(ValueError):
    pass


def parse_slab(market_id: str, data: bytes, program_id: str = "") -> MarketSnapshot:
    """Build a MarketSnapshot from raw (possibly sliced) slab bytes."""
    if not data.startswith(SLAB_MAGIC):
        raise SlabParseError(f"{market_id}: bad magic")
    end = _ORACLE_AUTHORITY_OFF + 32
    if len(data) < end:
        raise SlabParseError(f"{market_id}: slab data too short ({len(data)} < {end})")

    return MarketSnapshot(
        market_id=market_id,
        collateral_asset=str(Pubkey.from_bytes(data[_COLLATERAL_MINT_OFF:_COLLATERAL_MINT_OFF + 32])),
        index_feed_id=data[_INDEX_FEED_ID_OFF:_INDEX_FEED_ID_OFF + 32].hex(),
        oracle_authority=str(Pubkey.from_bytes(data[_ORACLE_AUTHORITY_OFF:_ORACLE_AUTHORITY_OFF + 32])),
        program_id=program_id,
    )


class ProgramMarketRegistry:
    """
    Scans each program for slabs of every known tier size. When every tier
    query fails, falls back to a single magic-bytes memcmp scan.
    """

    def __init__(self, rpc: SolanaRpc, program_ids: list[str]):
        self._rpc = rpc
        self._program_ids = list(program_ids)

    def discover(self) -> list[MarketSnapshot]:
        markets: list[MarketSnapshot] = []
        seen: set[str] = set()
        for program_id in self._program_ids:
            for snapshot in self._discover_program(program_id):
                if snapshot.market_id in seen:
                    continue
                seen.add(snapshot.market_id)
                markets.append(snapshot)
        return markets

    def _discover_program(self, program_id: str) -> list[MarketSnapshot]:
        raw_accounts = self._fetch_accounts(program_id)
        markets: list[MarketSnapshot] = []
        for pubkey, data in raw_accounts:
            if not data.startswith(SLAB_MAGIC):
                continue
            try:
                markets.append(parse_slab(pubkey, data, program_id))
            except (SlabParseError, ValueError) as e:
                logger.warning("Failed to parse slab %s: %s", pubkey, e)
        logger.debug("Program %s: %d slabs parsed", program_id[:8], len(markets))
        return markets

    def _fetch_accounts(self, program_id: str) -> list[tuple[str, bytes]]:
        accounts: list[tuple[str, bytes]] = []
        failures = 0
        for size in SLAB_TIER_SIZES:
            try:
                accounts.extend(self._rpc.get_program_accounts(
                    program_id,
                    filters=[{"dataSize": size}],
                    data_slice=(0, SLICE_LENGTH),
                ))
            except Exception as e:
                failures += 1
                logger.warning("Tier query (dataSize=%d) failed for %s: %s", size, program_id[:8], e)

        if failures == len(SLAB_TIER_SIZES):
            logger.warning("All tier queries failed for %s, falling back to memcmp", program_id[:8])
            accounts = self._rpc.get_program_accounts(
                program_id,
                filters=[{"memcmp": {"offset": 0, "bytes": base58.b58encode(SLAB_MAGIC).decode()}}],
                data_slice=(0, SLICE_LENGTH),
            )
        return accounts
