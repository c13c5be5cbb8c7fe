"""Simulate, sign, submit and confirm a built transaction.

A submission moves through ``BUILT -> SIMULATED -> SIGNED -> SUBMITTED ->
CONFIRMED`` and stops at the first failure. Only the read-only steps
(blockhash, simulation, status polling) go through the retrying fetcher;
``sendTransaction`` is attempted exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from solders.hash import Hash
from solders.message import Message
from solders.transaction import Transaction

from .builder import StakeInstructions
from .errors import ConfirmationTimeout, ConfirmationUnavailable, SimulationFailed, TransactionFailed
from .retry import RetryingFetcher
from .rpc import SolanaRPCClient
from .signer import TransactionSigner

CONFIRMED_STATUSES = {"confirmed", "finalized"}


class SubmissionStage(str, Enum):
    BUILT = "built"
    SIMULATED = "simulated"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class SubmissionReceipt:
    signature: str
    slot: Optional[int] = None
    confirmation_status: Optional[str] = None


class TransactionSubmitter:
    def __init__(
        self,
        client: SolanaRPCClient,
        fetcher: RetryingFetcher,
        commitment: str = "confirmed",
        confirm_timeout: float = 60.0,
        poll_interval: float = 0.5,
    ) -> None:
        self._client = client
        self._fetcher = fetcher
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.stage = SubmissionStage.BUILT
        self.logger = logging.getLogger(self.__class__.__name__)

    async def compile(self, built: StakeInstructions) -> Transaction:
        async def _blockhash() -> Dict[str, Any]:
            return await self._client.get_latest_blockhash(self.commitment)

        latest = await self._fetcher.fetch(_blockhash, label="getLatestBlockhash")
        blockhash = Hash.from_string(latest["blockhash"])
        message = Message.new_with_blockhash(list(built.instructions), built.fee_payer, blockhash)
        return Transaction.new_unsigned(message)

    async def simulate(self, transaction: Transaction) -> Dict[str, Any]:
        raw = bytes(transaction)

        async def _simulate() -> Dict[str, Any]:
            return await self._client.simulate_transaction(raw, self.commitment)

        value = await self._fetcher.fetch(_simulate, label="simulateTransaction")
        if value.get("err") is not None:
            raise SimulationFailed(value["err"], value.get("logs"))
        self.logger.info("Simulation succeeded (%s compute units)", value.get("unitsConsumed"))
        return value

    async def confirm(self, signature: str) -> SubmissionReceipt:
        try:
            return await asyncio.wait_for(self._poll_confirmation(signature), timeout=self.confirm_timeout)
        except asyncio.TimeoutError as exc:
            raise ConfirmationTimeout(signature, self.confirm_timeout) from exc
        except TransactionFailed:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            # Already sent: the outcome is unknown, so keep the signature.
            raise ConfirmationUnavailable(signature, exc) from exc

    async def _poll_confirmation(self, signature: str) -> SubmissionReceipt:
        async def _statuses():
            return await self._client.get_signature_statuses([signature])

        while True:
            statuses = await self._fetcher.fetch(_statuses, label="getSignatureStatuses")
            status = statuses[0] if statuses else None
            if status:
                if status.get("err") is not None:
                    raise TransactionFailed(signature, status["err"])
                confirmation_status = status.get("confirmationStatus")
                if confirmation_status in CONFIRMED_STATUSES:
                    return SubmissionReceipt(
                        signature=signature,
                        slot=status.get("slot"),
                        confirmation_status=confirmation_status,
                    )
            await asyncio.sleep(self.poll_interval)

    async def submit(self, built: StakeInstructions, signer: TransactionSigner) -> SubmissionReceipt:
        self.stage = SubmissionStage.BUILT
        try:
            transaction = await self.compile(built)
            await self.simulate(transaction)
            self.stage = SubmissionStage.SIMULATED

            if built.signers:
                transaction.partial_sign(list(built.signers), transaction.message.recent_blockhash)
            transaction = await signer.sign_transaction(transaction)
            self.stage = SubmissionStage.SIGNED

            signature = await self._client.send_raw_transaction(bytes(transaction), self.commitment)
            self.stage = SubmissionStage.SUBMITTED
            self.logger.info("Submitted transaction %s", signature)

            receipt = await self.confirm(signature)
            self.stage = SubmissionStage.CONFIRMED
        except Exception as exc:
            self.logger.warning("Submission stopped after stage=%s: %s", self.stage.value, exc)
            raise
        self.logger.info("Transaction %s confirmed at slot %s", receipt.signature, receipt.slot)
        return receipt
