"""Read path: validator set and wallet stake accounts, normalized into records."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from .errors import NetworkUnavailable
from .models import (
    LifecycleState,
    StakeAccountRecord,
    ValidatorRecord,
    lamports_to_sol,
    normalize_epoch,
    safe_int,
)
from .retry import RetryingFetcher
from .rpc import SolanaRPCClient
from .stake_program import STAKE_PROGRAM_ID, STAKER_AUTHORITY_OFFSET

logger = logging.getLogger(__name__)


def _parse_pubkey(value: Any) -> Optional[Pubkey]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return Pubkey.from_string(value)
    except Exception:  # pylint: disable=broad-except
        return None


def parse_vote_accounts(vote_accounts: Dict[str, Any]) -> Tuple[ValidatorRecord, ...]:
    records: List[ValidatorRecord] = []
    for category, delinquent_flag in (("current", False), ("delinquent", True)):
        for entry in vote_accounts.get(category, []) or []:
            address = _parse_pubkey(entry.get("votePubkey"))
            node_identity = _parse_pubkey(entry.get("nodePubkey"))
            commission = safe_int(entry.get("commission"))
            if address is None or node_identity is None or commission is None:
                logger.warning("Skipping malformed vote account entry: %s", entry)
                continue
            try:
                record = ValidatorRecord(
                    address=address,
                    node_identity=node_identity,
                    commission_percent=commission,
                    active_stake_units=lamports_to_sol(safe_int(entry.get("activatedStake"))),
                    delinquent=delinquent_flag,
                )
            except ValueError as exc:
                logger.warning("Skipping vote account %s: %s", address, exc)
                continue
            records.append(record)
    return tuple(records)


def derive_lifecycle_state(
    stake_type: Optional[str],
    activation_epoch: Optional[int],
    deactivation_epoch: Optional[int],
    current_epoch: Optional[int],
) -> LifecycleState:
    """Approximate the stake program's activation status from delegation epochs.

    Warmup and cooldown rate limits are ignored, so a large delegation may be
    reported ``active`` or ``inactive`` an epoch before the network agrees.
    """
    if stake_type != "delegated" or activation_epoch is None:
        return LifecycleState.INACTIVE
    if deactivation_epoch is not None:
        if current_epoch is not None and current_epoch > deactivation_epoch:
            return LifecycleState.INACTIVE
        return LifecycleState.DEACTIVATING
    if current_epoch is not None and activation_epoch >= current_epoch:
        return LifecycleState.ACTIVATING
    return LifecycleState.ACTIVE


def parse_stake_account(entry: Dict[str, Any], current_epoch: Optional[int]) -> Optional[StakeAccountRecord]:
    address = _parse_pubkey(entry.get("pubkey"))
    if address is None:
        return None
    account_info = entry.get("account") or {}
    data = account_info.get("data")
    parsed = data.get("parsed") if isinstance(data, dict) else None
    if not isinstance(parsed, dict):
        logger.debug("Stake account %s has no parsed data", address)
        return None

    info = parsed.get("info") or {}
    stake = info.get("stake") or {}
    delegation = stake.get("delegation") or {}
    state = derive_lifecycle_state(
        parsed.get("type"),
        normalize_epoch(delegation.get("activationEpoch")),
        normalize_epoch(delegation.get("deactivationEpoch")),
        current_epoch,
    )
    return StakeAccountRecord(
        account_address=address,
        balance_units=lamports_to_sol(safe_int(account_info.get("lamports"))),
        lifecycle_state=state,
        validator_vote=_parse_pubkey(delegation.get("voter")),
    )


class NetworkStateReader:
    def __init__(self, client: SolanaRPCClient, fetcher: RetryingFetcher) -> None:
        self._client = client
        self._fetcher = fetcher

    async def fetch_validators(self) -> Tuple[ValidatorRecord, ...]:
        try:
            vote_accounts = await self._fetcher.fetch(self._client.get_vote_accounts, label="getVoteAccounts")
        except Exception as exc:  # pylint: disable=broad-except
            raise NetworkUnavailable(
                "Failed to fetch validators. Please check your network connection and try again."
            ) from exc
        records = parse_vote_accounts(vote_accounts or {})
        logger.info("Fetched %d validators", len(records))
        return records

    async def fetch_stake_accounts(self, owner: Optional[Pubkey]) -> Tuple[StakeAccountRecord, ...]:
        if owner is None:
            return ()

        filters = [{"memcmp": {"offset": STAKER_AUTHORITY_OFFSET, "bytes": str(owner)}}]

        async def _query() -> List[Dict[str, Any]]:
            return await self._client.get_parsed_program_accounts(STAKE_PROGRAM_ID, filters)

        try:
            epoch_info = await self._fetcher.fetch(self._client.get_epoch_info, label="getEpochInfo")
            entries = await self._fetcher.fetch(_query, label="getProgramAccounts")
        except Exception as exc:  # pylint: disable=broad-except
            raise NetworkUnavailable("Failed to fetch stake accounts. Please try again later.") from exc

        current_epoch = safe_int((epoch_info or {}).get("epoch"))
        records = []
        for entry in entries or []:
            record = parse_stake_account(entry, current_epoch)
            if record is not None:
                records.append(record)
        logger.info("Discovered %d stake accounts for %s", len(records), owner)
        return tuple(records)
