"""
Authentication: keeper keypair loading.
"""

from __future__ import annotations

import json

import base58
from solders.keypair import Keypair

from config import Config


class KeypairError(ValueError):
    """Raised when the keeper secret key cannot be decoded."""


def load_keypair(raw: str) -> Keypair:
    """
    Decode a keeper secret key.
    Accepts either a JSON byte array (solana-keygen output) or a base58 string.
    """
    raw = raw.strip()
    if not raw:
        raise KeypairError("keeper secret key is empty")

    try:
        if raw.startswith("["):
            key_bytes = bytes(json.loads(raw))
        else:
            key_bytes = base58.b58decode(raw)
    except (ValueError, TypeError) as e:
        raise KeypairError(f"keeper secret key is not valid JSON or base58: {e}") from e

    if len(key_bytes) != 64:
        raise KeypairError(f"keeper secret key must be 64 bytes, got {len(key_bytes)}")
    try:
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        raise KeypairError(f"keeper secret key is malformed: {e}") from e


def build_keeper_keypair(cfg: Config) -> Keypair:
    """Load the keeper keypair from config. Raises KeypairError when unset."""
    if not cfg.crank_keypair:
        raise KeypairError("CRANK_KEYPAIR is required to sign cranks")
    return load_keypair(cfg.crank_keypair)
