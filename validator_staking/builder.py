"""Instruction sequences for creating a delegated stake account and for deactivating one."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account

from . import stake_program
from .errors import InvalidAmount
from .models import StakeRequest, sol_to_lamports
from .retry import RetryingFetcher
from .rpc import SolanaRPCClient

MINIMUM_STAKE_AMOUNT = Decimal("0.001")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StakeInstructions:
    instructions: Tuple[Instruction, ...]
    fee_payer: Pubkey
    signers: Tuple[Keypair, ...] = ()
    stake_account: Optional[Pubkey] = None
    stake_lamports: int = 0
    rent_exempt_reserve: int = 0

    @property
    def total_lamports(self) -> int:
        return self.stake_lamports + self.rent_exempt_reserve


class StakeTransactionBuilder:
    def __init__(
        self,
        client: SolanaRPCClient,
        fetcher: RetryingFetcher,
        minimum_stake: Decimal = MINIMUM_STAKE_AMOUNT,
    ) -> None:
        self._client = client
        self._fetcher = fetcher
        self.minimum_stake = Decimal(minimum_stake)

    def validate_amount(self, amount: Decimal) -> Decimal:
        try:
            amount = Decimal(amount)
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise InvalidAmount(f"Invalid stake amount: {amount!r}") from exc
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmount("Please enter a valid amount greater than 0")
        if amount < self.minimum_stake:
            raise InvalidAmount(f"Minimum stake amount is {self.minimum_stake} SOL")
        return amount

    async def rent_exempt_reserve(self) -> int:
        async def _query() -> int:
            return await self._client.get_minimum_balance_for_rent_exemption(stake_program.STAKE_ACCOUNT_SPACE)

        return await self._fetcher.fetch(_query, label="getMinimumBalanceForRentExemption")

    async def build_stake(self, request: StakeRequest) -> StakeInstructions:
        amount = self.validate_amount(request.amount_units)
        stake_keypair = Keypair()
        stake_pubkey = stake_keypair.pubkey()
        wallet = request.source_wallet

        lamports = sol_to_lamports(amount)
        reserve = await self.rent_exempt_reserve()

        instructions = (
            create_account(
                CreateAccountParams(
                    from_pubkey=wallet,
                    to_pubkey=stake_pubkey,
                    lamports=lamports + reserve,
                    space=stake_program.STAKE_ACCOUNT_SPACE,
                    owner=stake_program.STAKE_PROGRAM_ID,
                )
            ),
            stake_program.initialize(stake_pubkey, staker=wallet, withdrawer=wallet),
            stake_program.delegate_stake(stake_pubkey, request.target_validator, authority=wallet),
        )
        logger.info(
            "Built stake of %s SOL (%d lamports + %d reserve) from %s to %s via new account %s",
            amount,
            lamports,
            reserve,
            wallet,
            request.target_validator,
            stake_pubkey,
        )
        return StakeInstructions(
            instructions=instructions,
            fee_payer=wallet,
            signers=(stake_keypair,),
            stake_account=stake_pubkey,
            stake_lamports=lamports,
            rent_exempt_reserve=reserve,
        )

    def build_unstake(self, account_address: Pubkey, authority: Pubkey) -> StakeInstructions:
        return StakeInstructions(
            instructions=(stake_program.deactivate(account_address, authority),),
            fee_payer=authority,
            stake_account=account_address,
        )
