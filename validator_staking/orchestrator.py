"""Session-level coordinator used by the presentation layer."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from decimal import Decimal
from typing import Optional, Tuple, Union

from solders.pubkey import Pubkey

from .builder import StakeTransactionBuilder
from .errors import (
    NetworkUnavailable,
    OperationInProgress,
    ValidatorDelinquent,
    WalletNotConnected,
    classify_failure,
    describe_failure,
)
from .models import LifecycleState, StakeAccountRecord, StakeRequest, TransactionOutcome, ValidatorRecord
from .network_state import NetworkStateReader
from .signer import TransactionSigner
from .submitter import TransactionSubmitter
from .view import ValidatorView

DEFAULT_EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"


class StakeOrchestrator:
    def __init__(
        self,
        reader: NetworkStateReader,
        builder: StakeTransactionBuilder,
        submitter: TransactionSubmitter,
        signer: Optional[TransactionSigner] = None,
        view: Optional[ValidatorView] = None,
        explorer_tx_url: str = DEFAULT_EXPLORER_TX_URL,
    ) -> None:
        self.reader = reader
        self._builder = builder
        self._submitter = submitter
        self.signer = signer
        self.view = view or ValidatorView()
        self.explorer_tx_url = explorer_tx_url
        self._stake_accounts: Tuple[StakeAccountRecord, ...] = ()
        self._in_flight = False
        self.validator_error: Optional[str] = None
        self.stake_accounts_error: Optional[str] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def wallet(self) -> Optional[Pubkey]:
        return self.signer.pubkey if self.signer is not None else None

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def validators(self) -> Tuple[ValidatorRecord, ...]:
        return self.view.records

    @property
    def stake_accounts(self) -> Tuple[StakeAccountRecord, ...]:
        return self._stake_accounts

    async def load(self) -> None:
        await asyncio.gather(self.refresh_validators(), self.refresh_stake_accounts())

    async def refresh_validators(self) -> bool:
        try:
            records = await self.reader.fetch_validators()
        except NetworkUnavailable as exc:
            self.logger.error("Error fetching validators: %s", exc.__cause__ or exc)
            self.validator_error = str(exc)
            self.view.set_records(())
            return False
        self.validator_error = None
        self.view.set_records(records)
        return True

    async def refresh_stake_accounts(self) -> bool:
        try:
            records = await self.reader.fetch_stake_accounts(self.wallet)
        except NetworkUnavailable as exc:
            self.logger.error("Error fetching stake accounts: %s", exc.__cause__ or exc)
            self.stake_accounts_error = str(exc)
            return False
        self.stake_accounts_error = None
        self._stake_accounts = self._keep_deactivating(records)
        return True

    def _keep_deactivating(self, records: Tuple[StakeAccountRecord, ...]) -> Tuple[StakeAccountRecord, ...]:
        # A lagging RPC node must not move an account from deactivating back to active.
        deactivating = {
            record.account_address
            for record in self._stake_accounts
            if record.lifecycle_state is LifecycleState.DEACTIVATING
        }
        return tuple(
            dataclasses.replace(record, lifecycle_state=LifecycleState.DEACTIVATING)
            if record.account_address in deactivating and record.lifecycle_state is LifecycleState.ACTIVE
            else record
            for record in records
        )

    def explorer_link(self, signature: str) -> str:
        return self.explorer_tx_url.format(signature=signature)

    def _reject_if_busy(self, action: str) -> Optional[TransactionOutcome]:
        if self._in_flight:
            exc = OperationInProgress(f"A {action} is already in progress")
            return TransactionOutcome.failure(exc.kind, describe_failure(action.capitalize(), exc.kind, exc))
        if self.signer is None:
            exc = WalletNotConnected("No wallet connected")
            return TransactionOutcome.failure(exc.kind, describe_failure(action.capitalize(), exc.kind, exc))
        return None

    def _failure(self, action: str, exc: Exception) -> TransactionOutcome:
        kind = classify_failure(exc)
        self.logger.error("Error %s: %s (%s)", action, exc, kind.value)
        return TransactionOutcome.failure(
            kind,
            describe_failure(action.capitalize(), kind, exc),
            signature=getattr(exc, "signature", None),
        )

    async def stake(self, validator: Union[ValidatorRecord, Pubkey], amount: Decimal) -> TransactionOutcome:
        rejected = self._reject_if_busy("staking")
        if rejected is not None:
            return rejected
        self._in_flight = True
        try:
            vote_account = validator.address if isinstance(validator, ValidatorRecord) else validator
            try:
                if isinstance(validator, ValidatorRecord) and validator.delinquent:
                    raise ValidatorDelinquent(f"Validator {vote_account} is delinquent and cannot receive new stake")
                request = StakeRequest(
                    source_wallet=self.wallet,
                    target_validator=vote_account,
                    amount_units=self._builder.validate_amount(amount),
                )
                built = await self._builder.build_stake(request)
                receipt = await self._submitter.submit(built, self.signer)
            except Exception as exc:  # pylint: disable=broad-except
                return self._failure("staking", exc)

            link = self.explorer_link(receipt.signature)
            self.logger.info("Stake confirmed. Signature: %s", receipt.signature)
            try:
                refreshed = await self.refresh_stake_accounts()
            except Exception as exc:  # pylint: disable=broad-except
                self.logger.exception("Unexpected error refreshing stake accounts: %s", exc)
                refreshed = False
            if not refreshed:
                self.logger.warning("Stake succeeded but the stake account list could not be refreshed")
            return TransactionOutcome.success(
                receipt.signature,
                f"Staking successful! View transaction: {link}",
                explorer_url=link,
            )
        finally:
            self._in_flight = False

    async def unstake(self, account_address: Union[StakeAccountRecord, Pubkey, str]) -> TransactionOutcome:
        rejected = self._reject_if_busy("unstaking")
        if rejected is not None:
            return rejected
        self._in_flight = True
        try:
            try:
                address = _as_pubkey(account_address)
                built = self._builder.build_unstake(address, self.wallet)
                receipt = await self._submitter.submit(built, self.signer)
            except Exception as exc:  # pylint: disable=broad-except
                return self._failure("unstaking", exc)

            self._mark_deactivating(address)
            link = self.explorer_link(receipt.signature)
            return TransactionOutcome.success(
                receipt.signature,
                f"Unstaking initiated. View transaction: {link}",
                explorer_url=link,
            )
        finally:
            self._in_flight = False

    def _mark_deactivating(self, address: Pubkey) -> None:
        self._stake_accounts = tuple(
            dataclasses.replace(record, lifecycle_state=LifecycleState.DEACTIVATING)
            if record.account_address == address and record.lifecycle_state is LifecycleState.ACTIVE
            else record
            for record in self._stake_accounts
        )


def _as_pubkey(value: Union[StakeAccountRecord, Pubkey, str]) -> Pubkey:
    if isinstance(value, StakeAccountRecord):
        return value.account_address
    if isinstance(value, Pubkey):
        return value
    return Pubkey.from_string(value)
