"""
Configuration loaded from environment variables. Fail-fast on missing required values.
"""

from __future__ import annotations

import re

from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

_DEFAULT_RPC_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
}

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Network
    network: str = Field(default="devnet", pattern=r"^(devnet|testnet|mainnet)$")
    # Mainnet requires an explicit opt-in on top of NETWORK=mainnet
    force_mainnet: bool = False
    # Empty = public endpoint for the selected network (devnet/testnet only)
    rpc_url: str = ""
    program_id: str = "FxfD37s1AZTeWfFQps9Zpebi2dNQ9QSSDtfMKdbsfKrD"
    # Comma-separated list of additional programs scanned for markets
    extra_program_ids: str = ""

    # Keeper credentials (base58 secret key or JSON byte array)
    crank_keypair: str = Field(default="", description="Keeper secret key")

    # Scheduling
    crank_interval_sec: float = Field(default=10.0, gt=0)
    crank_caller_index: int = Field(default=65535, ge=0, le=65535)  # 65535 = permissionless
    crank_allow_panic: bool = False
    # Mark markets that vanish from discovery inactive instead of cranking them forever
    retire_missing_markets: bool = True

    # Pricing
    price_push_cooldown_sec: float = Field(default=5.0, ge=0)
    price_history_size: int = Field(default=100, ge=1)
    primary_price_host: str = "https://api.dexscreener.com"
    secondary_price_host: str = "https://api.jup.ag"
    price_timeout_sec: float = Field(default=5.0, gt=0)

    # Transaction submission
    rpc_timeout_sec: float = Field(default=15.0, gt=0)
    tx_max_attempts: int = Field(default=3, ge=1, le=10)
    tx_base_delay_sec: float = Field(default=1.0, ge=0)
    tx_max_delay_sec: float = Field(default=8.0, ge=0)
    tx_confirm_timeout_sec: float = Field(default=60.0, gt=0)
    tx_confirm_poll_sec: float = Field(default=2.0, gt=0)
    tx_skip_preflight: bool = False
    # 0 disables the corresponding compute-budget instruction
    compute_unit_limit: int = Field(default=400_000, ge=0, le=1_400_000)
    priority_fee_micro_lamports: int = Field(default=50_000, ge=0)

    # Output
    status_file: str = "status.md"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_network(self) -> "Config":
        if self.network == "mainnet":
            if not self.force_mainnet:
                raise ValueError("NETWORK=mainnet requires FORCE_MAINNET=1 (mainnet safety guard)")
            if not self.rpc_url:
                raise ValueError("NETWORK=mainnet requires an explicit RPC_URL")
        for pid in self.program_ids:
            if not _BASE58_RE.match(pid):
                raise ValueError(f"program id {pid!r} is not a base58 public key")
        return self

    @property
    def resolved_rpc_url(self) -> str:
        return self.rpc_url or _DEFAULT_RPC_URLS[self.network]

    @property
    def program_ids(self) -> list[str]:
        """Primary program first, then any extras, de-duplicated."""
        ids = [self.program_id]
        for raw in self.extra_program_ids.split(","):
            pid = raw.strip()
            if pid and pid not in ids:
                ids.append(pid)
        return ids


def load_config() -> Config:
    """Load and validate config from environment. Raises on missing required fields."""
    return Config()
