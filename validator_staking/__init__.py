"""Validator discovery and stake-transaction orchestration for Solana wallets."""

from .builder import MINIMUM_STAKE_AMOUNT, StakeInstructions, StakeTransactionBuilder
from .errors import FailureKind, StakingError, classify_failure
from .models import LifecycleState, StakeAccountRecord, StakeRequest, TransactionOutcome, ValidatorRecord
from .network_state import NetworkStateReader
from .orchestrator import StakeOrchestrator
from .retry import RetryingFetcher, fetch_with_retry
from .rpc import SolanaRPCClient
from .submitter import SubmissionStage, TransactionSubmitter
from .view import PAGE_SIZE, SortKey, ValidatorView

__version__ = "0.1.0"
