"""
Oracle-mode classification. A market is either admin-oracle (the keeper pushes
its price) or external-oracle (a Pyth push feed already on-chain supplies it).
Every component asks is_admin_oracle(); there is no second check.
"""

from __future__ import annotations

from solders.pubkey import Pubkey

from keeper.models import MarketSnapshot

DEFAULT_PUBKEY = "11111111111111111111111111111111"
PYTH_PUSH_ORACLE_PROGRAM_ID = Pubkey.from_string("pythWSnswVUd12oZpeFP8e9CVaEqJg25g1Vtc2biRsT")
PYTH_SHARD_ID = 0


def is_default_key(key: str) -> bool:
    return not key or key == DEFAULT_PUBKEY


def is_zero_feed(feed_id: str) -> bool:
    """True for an empty or all-zero hex feed id, with or without a 0x prefix."""
    return not feed_id.removeprefix("0x").strip("0")


def is_admin_oracle(snapshot: MarketSnapshot) -> bool:
    """
    Admin-oracle iff an oracle authority is set, or there is no index feed.
    A set authority wins regardless of the feed value.
    """
    return not is_default_key(snapshot.oracle_authority) or is_zero_feed(snapshot.index_feed_id)


def derive_pyth_push_oracle_pda(feed_id: str, shard_id: int = PYTH_SHARD_ID) -> Pubkey:
    """Pyth push-oracle price account for a 32-byte hex feed id."""
    feed_bytes = bytes.fromhex(feed_id.removeprefix("0x"))
    if len(feed_bytes) != 32:
        raise ValueError(f"feed id must be 32 bytes, got {len(feed_bytes)}")
    pda, _bump = Pubkey.find_program_address(
        [shard_id.to_bytes(2, "little"), feed_bytes],
        PYTH_PUSH_ORACLE_PROGRAM_ID,
    )
    return pda


def oracle_account_for(snapshot: MarketSnapshot) -> Pubkey:
    """Oracle account the crank must reference for this market."""
    if is_admin_oracle(snapshot):
        return Pubkey.from_string(snapshot.market_id)
    return derive_pyth_push_oracle_pda(snapshot.index_feed_id)
