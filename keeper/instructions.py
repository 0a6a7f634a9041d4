"""
Instruction encoders for the futures program. Little-endian, tag-prefixed.
"""

from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.sysvar import CLOCK

TAG_KEEPER_CRANK = 5
TAG_PUSH_ORACLE_PRICE = 17

PERMISSIONLESS_CALLER = 65535

_CRANK_LAYOUT = struct.Struct("<BHB")
_PUSH_PRICE_LAYOUT = struct.Struct("<BQq")


def encode_keeper_crank(caller_index: int = PERMISSIONLESS_CALLER, allow_panic: bool = False) -> bytes:
    if not 0 <= caller_index <= 0xFFFF:
        raise ValueError(f"caller_index out of u16 range: {caller_index}")
    return _CRANK_LAYOUT.pack(TAG_KEEPER_CRANK, caller_index, 1 if allow_panic else 0)


def encode_push_oracle_price(price_e6: int, timestamp: int) -> bytes:
    if not 0 < price_e6 < 2**64:
        raise ValueError(f"price_e6 must be a positive u64: {price_e6}")
    if timestamp < 0:
        raise ValueError(f"timestamp must be non-negative: {timestamp}")
    return _PUSH_PRICE_LAYOUT.pack(TAG_PUSH_ORACLE_PRICE, price_e6, timestamp)


def build_keeper_crank_ix(
    program_id: Pubkey,
    payer: Pubkey,
    market: Pubkey,
    oracle: Pubkey,
    caller_index: int = PERMISSIONLESS_CALLER,
    allow_panic: bool = False,
) -> Instruction:
    """Crank accounts: [payer, market, clock sysvar, oracle]."""
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=market, is_signer=False, is_writable=True),
        AccountMeta(pubkey=CLOCK, is_signer=False, is_writable=False),
        AccountMeta(pubkey=oracle, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, encode_keeper_crank(caller_index, allow_panic), accounts)


def build_push_price_ix(
    program_id: Pubkey,
    payer: Pubkey,
    market: Pubkey,
    price_e6: int,
    timestamp: int,
) -> Instruction:
    """Price-push accounts: [payer (oracle authority), market]."""
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=market, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id, encode_push_oracle_price(price_e6, timestamp), accounts)
