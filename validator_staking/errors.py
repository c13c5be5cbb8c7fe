"""Failure taxonomy for the staking core and the classifier that buckets
arbitrary exceptions into user-facing categories."""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class FailureKind(str, Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    INVALID_AMOUNT = "invalid_amount"
    SIMULATION_FAILED = "simulation_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    VALIDATOR_DELINQUENT = "validator_delinquent"
    UNCLASSIFIED = "unclassified"


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


class RPCError(RuntimeError):
    """Raised when the Solana RPC returns an error response."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    @property
    def logs(self) -> List[str]:
        if isinstance(self.data, dict):
            logs = self.data.get("logs")
            if isinstance(logs, list):
                return [str(line) for line in logs]
        return []


class StakingError(Exception):
    kind: FailureKind = FailureKind.UNCLASSIFIED


class NetworkUnavailable(StakingError):
    kind = FailureKind.NETWORK_UNAVAILABLE


class InvalidAmount(StakingError):
    kind = FailureKind.INVALID_AMOUNT


class InsufficientFunds(StakingError):
    kind = FailureKind.INSUFFICIENT_FUNDS


class OperationInProgress(StakingError):
    kind = FailureKind.OPERATION_IN_PROGRESS


class ValidatorDelinquent(StakingError):
    kind = FailureKind.VALIDATOR_DELINQUENT


class WalletNotConnected(StakingError):
    kind = FailureKind.WALLET_NOT_CONNECTED


class SimulationFailed(StakingError):
    kind = FailureKind.SIMULATION_FAILED

    def __init__(self, cause: Any, logs: Optional[Sequence[str]] = None) -> None:
        self.cause = cause
        self.logs = list(logs or [])
        super().__init__(f"Transaction simulation failed: {_render_cause(cause)}")


class TransactionFailed(StakingError):
    """The network accepted the transaction but recorded an execution error."""

    def __init__(self, signature: str, cause: Any) -> None:
        self.signature = signature
        self.cause = cause
        super().__init__(f"Transaction {signature} failed on-chain: {_render_cause(cause)}")


class ConfirmationTimeout(StakingError):
    kind = FailureKind.CONFIRMATION_TIMEOUT

    def __init__(self, signature: str, timeout: float) -> None:
        self.signature = signature
        self.timeout = timeout
        super().__init__(
            f"Transaction was not confirmed in {timeout:.2f} seconds. "
            f"Check signature {signature} before trying again."
        )


class ConfirmationUnavailable(ConfirmationTimeout):
    """The transaction was sent but its status could not be read back."""

    def __init__(self, signature: str, cause: BaseException) -> None:
        self.signature = signature
        self.timeout = None
        StakingError.__init__(
            self,
            f"Transaction was not confirmed: status lookup failed ({cause}). "
            f"Check signature {signature} before trying again.",
        )


_INSUFFICIENT_FUNDS_PATTERNS = (
    re.compile(r"custom program error: 0x1\b", re.IGNORECASE),
    re.compile(r"\b0x1\b"),
    re.compile(r"insufficient (lamports|funds)", re.IGNORECASE),
    re.compile(r"InsufficientFunds"),
    re.compile(r"\"Custom\":\s*1\b"),
)
_TIMEOUT_PATTERNS = (
    re.compile(r"was not confirmed", re.IGNORECASE),
    re.compile(r"timed out", re.IGNORECASE),
    re.compile(r"block height exceeded", re.IGNORECASE),
)
_SIMULATION_PATTERNS = (re.compile(r"simulation failed", re.IGNORECASE),)

_HINTS: Dict[FailureKind, str] = {
    FailureKind.INSUFFICIENT_FUNDS: "Insufficient funds for transaction.",
    FailureKind.SIMULATION_FAILED: "Transaction simulation failed. Please check your balance and try again.",
    FailureKind.CONFIRMATION_TIMEOUT: "Transaction timed out. Check the explorer before trying again.",
    FailureKind.NETWORK_UNAVAILABLE: "The RPC endpoint is unreachable. Please check your network connection and try again.",
    FailureKind.OPERATION_IN_PROGRESS: "Another staking operation is still in progress.",
    FailureKind.WALLET_NOT_CONNECTED: "Please connect your wallet first.",
    FailureKind.VALIDATOR_DELINQUENT: "This validator is delinquent. Please choose another validator.",
}


def _render_cause(cause: Any) -> str:
    if isinstance(cause, str):
        return cause
    try:
        return json.dumps(cause, default=str)
    except TypeError:
        return str(cause)


def _failure_text(exc: BaseException) -> str:
    parts = [str(exc)]
    logs = getattr(exc, "logs", None)
    if isinstance(logs, list):
        parts.extend(str(line) for line in logs)
    cause = getattr(exc, "cause", None)
    if cause is not None:
        parts.append(_render_cause(cause))
    return "\n".join(parts)


def classify_failure(exc: BaseException) -> FailureKind:
    text = _failure_text(exc)
    if isinstance(exc, InsufficientFunds) or any(p.search(text) for p in _INSUFFICIENT_FUNDS_PATTERNS):
        return FailureKind.INSUFFICIENT_FUNDS
    if isinstance(exc, StakingError) and exc.kind is not FailureKind.UNCLASSIFIED:
        return exc.kind
    if any(p.search(text) for p in _SIMULATION_PATTERNS):
        return FailureKind.SIMULATION_FAILED
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or any(p.search(text) for p in _TIMEOUT_PATTERNS):
        return FailureKind.CONFIRMATION_TIMEOUT
    return FailureKind.UNCLASSIFIED


def describe_failure(action: str, kind: FailureKind, exc: BaseException) -> str:
    message = f"{action} failed: {exc}"
    hint = _HINTS.get(kind)
    if hint:
        message += f"\n{hint}"
    return message
