from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from validator_staking.builder import StakeTransactionBuilder
from validator_staking.errors import RPCError
from validator_staking.models import ValidatorRecord
from validator_staking.network_state import NetworkStateReader
from validator_staking.orchestrator import StakeOrchestrator
from validator_staking.retry import RetryingFetcher
from validator_staking.submitter import TransactionSubmitter

U64_MAX = str(2**64 - 1)
RENT_EXEMPT_RESERVE = 2_282_880


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


def vote_entry(commission: int = 5, stake_lamports: int = 1_000_000_000_000) -> Dict[str, Any]:
    return {
        "votePubkey": str(Keypair().pubkey()),
        "nodePubkey": str(Keypair().pubkey()),
        "commission": commission,
        "activatedStake": stake_lamports,
        "epochVoteAccount": True,
        "lastVote": 1,
    }


def stake_entry(
    owner: Pubkey,
    lamports: int = 2_000_000_000,
    stake_type: str = "delegated",
    activation_epoch: str = "400",
    deactivation_epoch: str = U64_MAX,
    address: Optional[Pubkey] = None,
) -> Dict[str, Any]:
    return {
        "pubkey": str(address or Keypair().pubkey()),
        "account": {
            "lamports": lamports,
            "owner": "Stake11111111111111111111111111111111111111",
            "data": {
                "program": "stake",
                "parsed": {
                    "type": stake_type,
                    "info": {
                        "meta": {
                            "authorized": {"staker": str(owner), "withdrawer": str(owner)},
                            "rentExemptReserve": str(RENT_EXEMPT_RESERVE),
                        },
                        "stake": {
                            "delegation": {
                                "voter": str(Keypair().pubkey()),
                                "stake": str(lamports - RENT_EXEMPT_RESERVE),
                                "activationEpoch": activation_epoch,
                                "deactivationEpoch": deactivation_epoch,
                            }
                        },
                    },
                },
            },
        },
    }


def make_validator(commission: int, stake: str, address: Optional[Pubkey] = None) -> ValidatorRecord:
    return ValidatorRecord(
        address=address or Keypair().pubkey(),
        node_identity=Keypair().pubkey(),
        commission_percent=commission,
        active_stake_units=Decimal(stake),
        delinquent=False,
    )


class FakeRpc:
    """In-memory stand-in for SolanaRPCClient with scriptable failures."""

    def __init__(self):
        self.calls: List[str] = []
        self.failures: Dict[str, int] = {}
        self.vote_accounts: Dict[str, Any] = {"current": [vote_entry(), vote_entry(7)], "delinquent": [vote_entry(100)]}
        self.program_accounts: List[Dict[str, Any]] = []
        self.epoch = 500
        self.rent = RENT_EXEMPT_RESERVE
        self.simulation: Dict[str, Any] = {"err": None, "logs": ["Program log: ok"], "unitsConsumed": 4500}
        self.send_error: Optional[Exception] = None
        self.signature = str(Signature.default())
        self.statuses: List[Optional[Dict[str, Any]]] = [
            {"slot": 321, "confirmations": 1, "err": None, "confirmationStatus": "confirmed"}
        ]
        self.sent: List[bytes] = []
        self.simulated: List[bytes] = []

    def _record(self, method: str) -> None:
        self.calls.append(method)
        remaining = self.failures.get(method, 0)
        if remaining:
            self.failures[method] = remaining - 1
            raise RPCError(f"HTTP error on method {method}: 503 Service Unavailable", code=503)

    async def get_vote_accounts(self):
        self._record("getVoteAccounts")
        return self.vote_accounts

    async def get_epoch_info(self):
        self._record("getEpochInfo")
        return {"epoch": self.epoch, "slotIndex": 10, "slotsInEpoch": 432000}

    async def get_parsed_program_accounts(self, program_id, filters):
        self._record("getProgramAccounts")
        self.last_filters = filters
        return self.program_accounts

    async def get_minimum_balance_for_rent_exemption(self, size):
        self._record("getMinimumBalanceForRentExemption")
        return self.rent

    async def get_latest_blockhash(self, commitment="confirmed"):
        self._record("getLatestBlockhash")
        return {"blockhash": str(Hash.default()), "lastValidBlockHeight": 1000}

    async def simulate_transaction(self, raw, commitment="confirmed"):
        self._record("simulateTransaction")
        self.simulated.append(raw)
        return self.simulation

    async def send_raw_transaction(self, raw, preflight_commitment="confirmed"):
        self.calls.append("sendTransaction")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw)
        return self.signature

    async def get_signature_statuses(self, signatures):
        self._record("getSignatureStatuses")
        return self.statuses


class FakeSigner:
    def __init__(self, reject: Optional[Exception] = None):
        self.keypair = Keypair()
        self.reject = reject
        self.sign_calls = 0

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        self.sign_calls += 1
        if self.reject is not None:
            raise self.reject
        transaction.partial_sign([self.keypair], transaction.message.recent_blockhash)
        return transaction


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def fetcher(sleep_recorder):
    return RetryingFetcher(max_attempts=5, initial_delay=1.0, sleep=sleep_recorder)


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def reader(rpc, fetcher):
    return NetworkStateReader(rpc, fetcher)


@pytest.fixture
def builder(rpc, fetcher):
    return StakeTransactionBuilder(rpc, fetcher)


@pytest.fixture
def submitter(rpc, fetcher):
    return TransactionSubmitter(rpc, fetcher, confirm_timeout=0.2, poll_interval=0.01)


@pytest.fixture
def orchestrator(reader, builder, submitter, signer):
    return StakeOrchestrator(reader, builder, submitter, signer=signer)
