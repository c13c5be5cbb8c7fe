"""Stake program constants and instruction encoders."""

from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

STAKE_PROGRAM_ID = Pubkey.from_string("Stake11111111111111111111111111111111111111")
STAKE_CONFIG_ID = Pubkey.from_string("StakeConfig11111111111111111111111111111111")
SYSVAR_RENT_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")
SYSVAR_CLOCK_ID = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")
SYSVAR_STAKE_HISTORY_ID = Pubkey.from_string("SysvarStakeHistory1111111111111111111111111")

STAKE_ACCOUNT_SPACE = 200
# Authorized.staker inside the serialized StakeStateV2 (4-byte tag + 8-byte rent reserve).
STAKER_AUTHORITY_OFFSET = 12

INITIALIZE = 0
DELEGATE_STAKE = 2
DEACTIVATE = 5


def _tag(index: int) -> bytes:
    return struct.pack("<I", index)


def initialize(
    stake_account: Pubkey,
    staker: Pubkey,
    withdrawer: Pubkey,
    unix_timestamp: int = 0,
    epoch: int = 0,
    custodian: Pubkey = Pubkey.default(),
) -> Instruction:
    data = (
        _tag(INITIALIZE)
        + bytes(staker)
        + bytes(withdrawer)
        + struct.pack("<qQ", unix_timestamp, epoch)
        + bytes(custodian)
    )
    accounts = [
        AccountMeta(stake_account, is_signer=False, is_writable=True),
        AccountMeta(SYSVAR_RENT_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(STAKE_PROGRAM_ID, data, accounts)


def delegate_stake(stake_account: Pubkey, vote_account: Pubkey, authority: Pubkey) -> Instruction:
    accounts = [
        AccountMeta(stake_account, is_signer=False, is_writable=True),
        AccountMeta(vote_account, is_signer=False, is_writable=False),
        AccountMeta(SYSVAR_CLOCK_ID, is_signer=False, is_writable=False),
        AccountMeta(SYSVAR_STAKE_HISTORY_ID, is_signer=False, is_writable=False),
        AccountMeta(STAKE_CONFIG_ID, is_signer=False, is_writable=False),
        AccountMeta(authority, is_signer=True, is_writable=False),
    ]
    return Instruction(STAKE_PROGRAM_ID, _tag(DELEGATE_STAKE), accounts)


def deactivate(stake_account: Pubkey, authority: Pubkey) -> Instruction:
    accounts = [
        AccountMeta(stake_account, is_signer=False, is_writable=True),
        AccountMeta(SYSVAR_CLOCK_ID, is_signer=False, is_writable=False),
        AccountMeta(authority, is_signer=True, is_writable=False),
    ]
    return Instruction(STAKE_PROGRAM_ID, _tag(DEACTIVATE), accounts)


def instruction_tag(instruction: Instruction) -> int:
    return struct.unpack_from("<I", bytes(instruction.data))[0]
