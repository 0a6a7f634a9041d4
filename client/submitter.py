"""
Transaction submission with retry. Every attempt fetches a fresh blockhash,
prepends compute-budget instructions, signs, sends and polls for confirmation.

Only transient failures are retried (RPC/transport errors, confirmation
timeouts). A transaction that executed and failed on-chain raises at once.
Before re-sending after a timeout, earlier signatures are checked again so a
late landing is not duplicated.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from client.rpc import SolanaRpc

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3
_BASE_DELAY_SEC = 1.0
_MAX_DELAY_SEC = 8.0

_LANDED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)


class SubmissionError(Exception):
    """Transaction could not be landed."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class TransactionFailed(Exception):
    """Transaction executed and returned an error. Resending cannot help."""

    def __init__(self, signature: str, err):
        super().__init__(f"transaction {signature} failed on-chain: {err}")
        self.signature = signature
        self.err = err


class ConfirmationTimeout(Exception):
    def __init__(self, signature: str, timeout_sec: float):
        super().__init__(f"transaction {signature} not confirmed within {timeout_sec:.0f}s")
        self.signature = signature


def _backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential delay for *attempt* (0-based) plus up to one base of jitter, capped."""
    return min(base * (2 ** attempt) + random.random() * base, cap)


class TransactionSubmitter:
    """
    submit(instructions, signer) -> signature.
    Retries transient failures with exponential backoff plus jitter.
    """

    def __init__(
        self,
        rpc: SolanaRpc,
        max_attempts: int = _MAX_ATTEMPTS,
        base_delay_sec: float = _BASE_DELAY_SEC,
        max_delay_sec: float = _MAX_DELAY_SEC,
        confirm_timeout_sec: float = 60.0,
        confirm_poll_sec: float = 2.0,
        compute_unit_limit: int = 400_000,
        priority_fee_micro_lamports: int = 50_000,
        skip_preflight: bool = False,
    ):
        self._rpc = rpc
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay_sec
        self._max_delay = max_delay_sec
        self._confirm_timeout = confirm_timeout_sec
        self._confirm_poll = confirm_poll_sec
        self._cu_limit = compute_unit_limit
        self._priority_fee = priority_fee_micro_lamports
        self._skip_preflight = skip_preflight

    def submit(self, instructions: Sequence[Instruction], signer: Keypair) -> str:
        if not instructions:
            raise ValueError("submit() needs at least one instruction")

        last_error = ""
        unconfirmed: list[str] = []
        for attempt in range(self._max_attempts):
            try:
                landed = self._find_landed(unconfirmed)
                if landed:
                    logger.info("Earlier transaction landed late: %s", landed)
                    return landed
                signature = self._send_once(instructions, signer)
                self._confirm(signature)
                if attempt:
                    logger.info("Transaction landed on attempt %d: %s", attempt + 1, signature)
                return signature
            except TransactionFailed as e:
                raise SubmissionError(str(e), attempts=attempt + 1) from e
            except ConfirmationTimeout as e:
                unconfirmed.append(e.signature)
                last_error = str(e)
            except Exception as e:
                last_error = str(e) or type(e).__name__

            if attempt == self._max_attempts - 1:
                break
            wait = _backoff_delay(attempt, self._base_delay, self._max_delay)
            logger.debug(
                "Submit retry %d/%d after %.1fs: %s",
                attempt + 1, self._max_attempts, wait, last_error,
            )
            time.sleep(wait)

        raise SubmissionError(
            f"transaction failed after {self._max_attempts} attempts: {last_error}",
            attempts=self._max_attempts,
        )

    def compute_budget_instructions(self) -> list[Instruction]:
        ixs: list[Instruction] = []
        if self._cu_limit > 0:
            ixs.append(set_compute_unit_limit(self._cu_limit))
        if self._priority_fee > 0:
            ixs.append(set_compute_unit_price(self._priority_fee))
        return ixs

    def _send_once(self, instructions: Sequence[Instruction], signer: Keypair) -> str:
        blockhash = self._rpc.get_latest_blockhash()
        ixs = self.compute_budget_instructions() + list(instructions)
        message = Message.new_with_blockhash(ixs, signer.pubkey(), blockhash)
        tx = Transaction.new_unsigned(message)
        tx.sign([signer], blockhash)
        return self._rpc.send_transaction(tx, skip_preflight=self._skip_preflight)

    def _landed(self, signature: str) -> bool:
        """True once confirmed/finalized. Raises TransactionFailed on an on-chain error."""
        status = self._rpc.get_signature_status(signature)
        if status is None:
            return False
        if status.err is not None:
            raise TransactionFailed(signature, status.err)
        return status.confirmation_status in _LANDED

    def _find_landed(self, signatures: list[str]) -> str | None:
        for signature in signatures:
            if self._landed(signature):
                return signature
        return None

    def _confirm(self, signature: str) -> None:
        """Poll until confirmed/finalized. Raises on on-chain error or timeout."""
        deadline = time.time() + self._confirm_timeout
        while not self._landed(signature):
            if time.time() >= deadline:
                raise ConfirmationTimeout(signature, self._confirm_timeout)
            time.sleep(self._confirm_poll)
