import asyncio
from decimal import Decimal

import pytest
from solders.keypair import Keypair

from conftest import make_validator, stake_entry
from validator_staking.errors import FailureKind
from validator_staking.models import LifecycleState
from validator_staking.orchestrator import StakeOrchestrator


@pytest.mark.asyncio
async def test_load_populates_validators_and_stake_accounts(orchestrator, rpc, signer):
    rpc.program_accounts = [stake_entry(signer.pubkey), stake_entry(signer.pubkey, stake_type="initialized")]
    await orchestrator.load()

    assert len(orchestrator.validators) == 3
    assert orchestrator.view.page_items == orchestrator.view.visible
    assert [a.lifecycle_state for a in orchestrator.stake_accounts] == [LifecycleState.ACTIVE, LifecycleState.INACTIVE]
    assert orchestrator.validator_error is None


@pytest.mark.asyncio
async def test_validator_failure_is_fatal_but_stake_accounts_degrade(orchestrator, rpc, signer):
    rpc.failures["getVoteAccounts"] = 5
    rpc.program_accounts = [stake_entry(signer.pubkey)]
    await orchestrator.load()

    assert orchestrator.validators == ()
    assert "Failed to fetch validators" in orchestrator.validator_error
    assert len(orchestrator.stake_accounts) == 1


@pytest.mark.asyncio
async def test_stake_account_failure_keeps_validators_usable(orchestrator, rpc):
    rpc.failures["getProgramAccounts"] = 5
    await orchestrator.load()

    assert len(orchestrator.validators) == 3
    assert orchestrator.stake_accounts == ()
    assert orchestrator.stake_accounts_error


@pytest.mark.asyncio
async def test_stake_success_reports_signature_and_refreshes(orchestrator, rpc, signer):
    await orchestrator.load()
    validator = orchestrator.validators[0]
    rpc.program_accounts = [stake_entry(signer.pubkey)]

    outcome = await orchestrator.stake(validator, Decimal("0.5"))

    assert outcome.ok and outcome.confirmed
    assert outcome.signature
    assert outcome.explorer_url == f"https://solscan.io/tx/{outcome.signature}"
    assert len(orchestrator.stake_accounts) == 1
    assert not orchestrator.busy


@pytest.mark.asyncio
async def test_stake_success_survives_failed_refresh(orchestrator, rpc):
    await orchestrator.load()
    rpc.failures["getEpochInfo"] = 5
    outcome = await orchestrator.stake(orchestrator.validators[0], Decimal("1"))
    assert outcome.ok


@pytest.mark.asyncio
async def test_stake_below_minimum_is_invalid_amount(orchestrator, rpc):
    outcome = await orchestrator.stake(Keypair().pubkey(), Decimal("0.0009"))
    assert not outcome.ok
    assert outcome.kind is FailureKind.INVALID_AMOUNT
    assert "Minimum stake amount is 0.001 SOL" in outcome.message
    assert rpc.calls == []


@pytest.mark.asyncio
async def test_stake_simulation_failure_outcome(orchestrator, rpc, signer):
    rpc.simulation = {"err": {"InstructionError": [2, "InvalidAccountData"]}, "logs": []}
    outcome = await orchestrator.stake(Keypair().pubkey(), Decimal("0.5"))

    assert outcome.kind is FailureKind.SIMULATION_FAILED
    assert signer.sign_calls == 0
    assert outcome.message.startswith("Staking failed: Transaction simulation failed")


@pytest.mark.asyncio
async def test_insufficient_funds_from_simulation_logs(orchestrator, rpc):
    rpc.simulation = {
        "err": {"InstructionError": [0, {"Custom": 1}]},
        "logs": ["Transfer: insufficient lamports 100, need 502282880", "Program failed: custom program error: 0x1"],
    }
    outcome = await orchestrator.stake(Keypair().pubkey(), Decimal("0.5"))
    assert outcome.kind is FailureKind.INSUFFICIENT_FUNDS
    assert "Insufficient funds" in outcome.message


@pytest.mark.asyncio
async def test_confirmation_timeout_leaves_stake_accounts_untouched(orchestrator, rpc, signer):
    rpc.program_accounts = [stake_entry(signer.pubkey)]
    await orchestrator.load()
    before = orchestrator.stake_accounts
    rpc.statuses = [None]

    outcome = await orchestrator.unstake(before[0].account_address)

    assert outcome.kind is FailureKind.CONFIRMATION_TIMEOUT
    assert outcome.signature == rpc.signature
    assert orchestrator.stake_accounts is before
    assert rpc.calls.count("sendTransaction") == 1


@pytest.mark.asyncio
async def test_unstake_marks_account_deactivating(orchestrator, rpc, signer):
    first, second = stake_entry(signer.pubkey), stake_entry(signer.pubkey)
    rpc.program_accounts = [first, second]
    await orchestrator.load()
    before = orchestrator.stake_accounts

    outcome = await orchestrator.unstake(first["pubkey"])

    assert outcome.ok
    assert [a.lifecycle_state for a in orchestrator.stake_accounts] == [
        LifecycleState.DEACTIVATING,
        LifecycleState.ACTIVE,
    ]
    assert before[0].lifecycle_state is LifecycleState.ACTIVE


@pytest.mark.asyncio
async def test_refresh_never_moves_deactivating_back_to_active(orchestrator, rpc, signer):
    rpc.program_accounts = [stake_entry(signer.pubkey)]
    await orchestrator.load()
    await orchestrator.unstake(orchestrator.stake_accounts[0])

    await orchestrator.refresh_stake_accounts()
    assert orchestrator.stake_accounts[0].lifecycle_state is LifecycleState.DEACTIVATING


@pytest.mark.asyncio
async def test_unstake_failure_leaves_record_unchanged(orchestrator, rpc, signer):
    rpc.program_accounts = [stake_entry(signer.pubkey)]
    await orchestrator.load()
    rpc.simulation = {"err": "AccountNotFound", "logs": []}

    outcome = await orchestrator.unstake(orchestrator.stake_accounts[0])

    assert not outcome.ok
    assert orchestrator.stake_accounts[0].lifecycle_state is LifecycleState.ACTIVE


@pytest.mark.asyncio
async def test_second_operation_is_rejected_while_one_is_in_flight(orchestrator, rpc):
    release = asyncio.Event()
    original = rpc.simulate_transaction

    async def slow_simulation(raw, commitment="confirmed"):
        await release.wait()
        return await original(raw, commitment)

    rpc.simulate_transaction = slow_simulation
    first = asyncio.ensure_future(orchestrator.stake(Keypair().pubkey(), Decimal("1")))
    await asyncio.sleep(0)
    while not orchestrator.busy:
        await asyncio.sleep(0)

    second = await orchestrator.unstake(Keypair().pubkey())
    assert second.kind is FailureKind.OPERATION_IN_PROGRESS
    assert not second.ok

    release.set()
    assert (await first).ok
    assert not orchestrator.busy


@pytest.mark.asyncio
async def test_operations_require_a_connected_wallet(reader, builder, submitter, rpc):
    orchestrator = StakeOrchestrator(reader, builder, submitter, signer=None)
    outcome = await orchestrator.stake(Keypair().pubkey(), Decimal("1"))
    assert outcome.kind is FailureKind.WALLET_NOT_CONNECTED
    await orchestrator.refresh_stake_accounts()
    assert orchestrator.stake_accounts == ()
    assert rpc.calls == []


@pytest.mark.asyncio
async def test_stake_reports_signature_when_status_lookup_fails(orchestrator, rpc):
    await orchestrator.load()
    rpc.failures["getSignatureStatuses"] = 5

    outcome = await orchestrator.stake(orchestrator.validators[0], Decimal("0.5"))

    assert not outcome.ok
    assert outcome.kind is FailureKind.CONFIRMATION_TIMEOUT
    assert outcome.signature == rpc.signature
    assert rpc.signature in outcome.message
    assert rpc.calls.count("sendTransaction") == 1


@pytest.mark.asyncio
async def test_stake_to_delinquent_validator_is_rejected(orchestrator, rpc):
    await orchestrator.load()
    delinquent = next(v for v in orchestrator.validators if v.delinquent)
    rpc.calls.clear()

    outcome = await orchestrator.stake(delinquent, Decimal("0.5"))

    assert not outcome.ok
    assert outcome.kind is FailureKind.VALIDATOR_DELINQUENT
    assert "delinquent" in outcome.message
    assert rpc.calls == []
    assert not orchestrator.busy


@pytest.mark.asyncio
async def test_healthy_validator_record_can_be_staked(orchestrator):
    outcome = await orchestrator.stake(make_validator(5, "100"), Decimal("0.5"))
    assert outcome.ok


@pytest.mark.asyncio
async def test_stake_success_survives_unexpected_refresh_error(orchestrator, monkeypatch):
    async def broken_fetch(owner):
        raise AttributeError("'list' object has no attribute 'get'")

    monkeypatch.setattr(orchestrator.reader, "fetch_stake_accounts", broken_fetch)
    outcome = await orchestrator.stake(Keypair().pubkey(), Decimal("0.5"))

    assert outcome.ok
    assert outcome.signature
    assert not orchestrator.busy


@pytest.mark.asyncio
async def test_unstake_only_marks_active_accounts_deactivating(orchestrator, rpc, signer):
    rpc.program_accounts = [stake_entry(signer.pubkey, activation_epoch=str(rpc.epoch))]
    await orchestrator.load()
    assert orchestrator.stake_accounts[0].lifecycle_state is LifecycleState.ACTIVATING

    outcome = await orchestrator.unstake(orchestrator.stake_accounts[0])

    assert outcome.ok
    assert orchestrator.stake_accounts[0].lifecycle_state is LifecycleState.ACTIVATING
