"""
Synchronous Solana RPC access for the keeper, on top of solana-py's Client.
Only the calls the keeper needs: blockhash, send, signature status,
program-account scan, slot. Transport and RPC errors surface as RpcError.
"""

from __future__ import annotations

import logging
from typing import Callable

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import DataSliceOpts, MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionStatus

logger = logging.getLogger(__name__)

_TIMEOUT = 15.0


class RpcError(Exception):
    """RPC error response, transport failure or malformed response."""

    def __init__(self, method: str, message: str):
        super().__init__(f"RPC {method} failed: {message}")
        self.method = method


def _to_filter(spec: dict) -> int | MemcmpOpts:
    """{"dataSize": n} or {"memcmp": {"offset", "bytes"}} -> solana-py filter."""
    if "dataSize" in spec:
        return int(spec["dataSize"])
    if "memcmp" in spec:
        memcmp = spec["memcmp"]
        return MemcmpOpts(offset=int(memcmp["offset"]), bytes=memcmp["bytes"])
    raise ValueError(f"unsupported account filter: {spec!r}")


class SolanaRpc:
    """Wraps solana.rpc.api.Client; returns plain values and solders types."""

    def __init__(self, url: str, timeout: float = _TIMEOUT, client: Client | None = None):
        self._url = url
        self._client = client or Client(url, commitment=Confirmed, timeout=timeout)

    @property
    def url(self) -> str:
        return self._url

    def _value(self, method: str, fn: Callable, *args, **kwargs):
        try:
            resp = fn(*args, **kwargs)
        except (SolanaRpcException, RPCException) as e:
            raise RpcError(method, str(e) or type(e).__name__) from e
        # error payloads parse into solders error objects, which carry no value
        try:
            return resp.value
        except AttributeError:
            raise RpcError(method, f"unexpected response: {resp}") from None

    def get_latest_blockhash(self) -> Hash:
        value = self._value("getLatestBlockhash", self._client.get_latest_blockhash, Confirmed)
        return value.blockhash

    def send_transaction(self, tx: Transaction, skip_preflight: bool = False) -> str:
        opts = TxOpts(skip_confirmation=True, skip_preflight=skip_preflight, preflight_commitment=Confirmed)
        signature = self._value("sendTransaction", self._client.send_raw_transaction, bytes(tx), opts)
        return str(signature)

    def get_signature_status(self, signature: str) -> TransactionStatus | None:
        """Status for one signature, or None if the cluster has not seen it yet."""
        statuses = self._value(
            "getSignatureStatuses",
            self._client.get_signature_statuses,
            [Signature.from_string(signature)],
            search_transaction_history=True,
        )
        return statuses[0] if statuses else None

    def get_program_accounts(
        self,
        program_id: str,
        filters: list[dict] | None = None,
        data_slice: tuple[int, int] | None = None,
    ) -> list[tuple[str, bytes]]:
        """Return (pubkey, raw data) for every account owned by *program_id* matching *filters*."""
        accounts = self._value(
            "getProgramAccounts",
            self._client.get_program_accounts,
            Pubkey.from_string(program_id),
            commitment=Confirmed,
            encoding="base64",
            data_slice=DataSliceOpts(offset=data_slice[0], length=data_slice[1]) if data_slice else None,
            filters=[_to_filter(f) for f in filters] if filters else None,
        )
        return [(str(keyed.pubkey), bytes(keyed.account.data)) for keyed in accounts]

    def get_slot(self) -> int:
        return int(self._value("getSlot", self._client.get_slot))
