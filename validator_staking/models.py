"""Domain records shared by the read and write paths."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Optional

from solders.pubkey import Pubkey

from .errors import FailureKind


LAMPORTS_PER_SOL = 1_000_000_000
_LAMPORTS_PER_SOL_DECIMAL = Decimal(LAMPORTS_PER_SOL)


def lamports_to_sol(value: Optional[int]) -> Decimal:
    if value in (None, 0):
        return Decimal(0)
    return Decimal(value) / _LAMPORTS_PER_SOL_DECIMAL


def sol_to_lamports(amount: Decimal) -> int:
    return int((Decimal(amount) * _LAMPORTS_PER_SOL_DECIMAL).to_integral_value(rounding=ROUND_FLOOR))


def safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def normalize_epoch(value: Any) -> Optional[int]:
    epoch = safe_int(value)
    if epoch is None:
        return None
    if epoch in {2**64 - 1, 2**32 - 1}:
        return None
    return epoch


class LifecycleState(str, Enum):
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"


@dataclass(frozen=True)
class ValidatorRecord:
    address: Pubkey
    node_identity: Pubkey
    commission_percent: int
    active_stake_units: Decimal
    delinquent: bool

    def __post_init__(self) -> None:
        if not 0 <= self.commission_percent <= 100:
            raise ValueError(f"commission out of range: {self.commission_percent}")

    def to_row(self) -> dict:
        return {
            "address": str(self.address),
            "node_identity": str(self.node_identity),
            "commission_percent": self.commission_percent,
            "active_stake_sol": self.active_stake_units,
            "delinquent": self.delinquent,
        }


@dataclass(frozen=True)
class StakeAccountRecord:
    account_address: Pubkey
    balance_units: Decimal
    lifecycle_state: LifecycleState
    validator_vote: Optional[Pubkey] = None

    @property
    def can_unstake(self) -> bool:
        return self.lifecycle_state is LifecycleState.ACTIVE

    def to_row(self) -> dict:
        return {
            "stake_account": str(self.account_address),
            "balance_sol": self.balance_units,
            "state": self.lifecycle_state.value,
            "validator_vote": str(self.validator_vote) if self.validator_vote is not None else None,
        }


@dataclass(frozen=True)
class StakeRequest:
    source_wallet: Pubkey
    target_validator: Pubkey
    amount_units: Decimal


@dataclass(frozen=True)
class TransactionOutcome:
    ok: bool
    message: str
    signature: Optional[str] = None
    confirmed: bool = False
    kind: Optional[FailureKind] = None
    explorer_url: Optional[str] = None

    @classmethod
    def success(cls, signature: str, message: str, explorer_url: Optional[str] = None) -> "TransactionOutcome":
        return cls(ok=True, message=message, signature=signature, confirmed=True, explorer_url=explorer_url)

    @classmethod
    def failure(cls, kind: FailureKind, message: str, signature: Optional[str] = None) -> "TransactionOutcome":
        return cls(ok=False, message=message, signature=signature, kind=kind)
