"""
Unit tests for config.py.
"""

import pytest
from pydantic import ValidationError

from config import Config, load_config


class TestConfig:
    def test_defaults(self):
        cfg = Config(_env_file=None)
        assert cfg.network == "devnet"
        assert cfg.crank_interval_sec == 10.0
        assert cfg.crank_caller_index == 65535
        assert cfg.crank_allow_panic is False
        assert cfg.price_push_cooldown_sec == 5.0
        assert cfg.price_history_size == 100
        assert cfg.tx_max_attempts == 3
        assert cfg.retire_missing_markets is True
        assert cfg.primary_price_host == "https://api.dexscreener.com"
        assert cfg.secondary_price_host == "https://api.jup.ag"

    def test_keypair_empty_by_default(self, monkeypatch):
        monkeypatch.delenv("CRANK_KEYPAIR", raising=False)
        cfg = Config(_env_file=None)
        assert cfg.crank_keypair == ""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CRANK_INTERVAL_SEC", "30")
        monkeypatch.setenv("NETWORK", "testnet")
        cfg = Config(_env_file=None)
        assert cfg.crank_interval_sec == 30.0
        assert cfg.network == "testnet"

    def test_non_positive_interval_raises(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, crank_interval_sec=0)

    def test_caller_index_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, crank_caller_index=70000)

    def test_unknown_network_raises(self):
        with pytest.raises(ValidationError):
            Config(_env_file=None, network="localnet")

    def test_load_config_returns_config(self, monkeypatch):
        monkeypatch.delenv("NETWORK", raising=False)
        assert isinstance(load_config(), Config)


class TestNetworkGuard:
    def test_default_rpc_per_network(self):
        assert Config(_env_file=None).resolved_rpc_url == "https://api.devnet.solana.com"
        assert Config(_env_file=None, network="testnet").resolved_rpc_url == "https://api.testnet.solana.com"

    def test_explicit_rpc_wins(self):
        cfg = Config(_env_file=None, rpc_url="https://rpc.example.com")
        assert cfg.resolved_rpc_url == "https://rpc.example.com"

    def test_mainnet_requires_force_flag(self):
        with pytest.raises(ValidationError, match="FORCE_MAINNET"):
            Config(_env_file=None, network="mainnet", rpc_url="https://rpc.example.com")

    def test_mainnet_requires_explicit_rpc(self):
        with pytest.raises(ValidationError, match="RPC_URL"):
            Config(_env_file=None, network="mainnet", force_mainnet=True)

    def test_mainnet_allowed_with_guard_satisfied(self):
        cfg = Config(
            _env_file=None, network="mainnet", force_mainnet=True, rpc_url="https://rpc.example.com",
        )
        assert cfg.resolved_rpc_url == "https://rpc.example.com"

    def test_invalid_program_id_raises(self):
        with pytest.raises(ValidationError, match="base58"):
            Config(_env_file=None, program_id="not-a-key!")


class TestProgramIds:
    def test_primary_only(self):
        cfg = Config(_env_file=None)
        assert cfg.program_ids == [cfg.program_id]

    def test_extras_appended_and_deduplicated(self):
        extra = "FwfBKZXbYr4vTK23bMFkbgKq3npJ3MSDxEaKmq9Aj4Qn"
        cfg = Config(_env_file=None, extra_program_ids=f" {extra}, ,{extra},FxfD37s1AZTeWfFQps9Zpebi2dNQ9QSSDtfMKdbsfKrD")
        assert cfg.program_ids == [cfg.program_id, extra]
