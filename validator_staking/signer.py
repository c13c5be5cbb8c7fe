"""Signing capabilities.

The wallet layer is external; anything exposing ``pubkey`` and an awaitable
``sign_transaction(tx)`` can sign. :class:`KeypairSigner` covers the common
case of a Solana CLI keypair file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import ConfigurationError


class TransactionSigner(Protocol):
    @property
    def pubkey(self) -> Pubkey: ...

    async def sign_transaction(self, transaction: Transaction) -> Transaction: ...


class KeypairSigner:
    def __init__(self, keypair: Keypair) -> None:
        self._keypair = keypair
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_file(cls, path: Path) -> "KeypairSigner":
        path = Path(path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Keypair file not found at {path}")
        try:
            secret = json.loads(path.read_text(encoding="utf-8"))
            keypair = Keypair.from_bytes(bytes(secret))
        except Exception as exc:  # pylint: disable=broad-except
            raise ConfigurationError(f"Invalid keypair file {path}: {exc}") from exc
        return cls(keypair)

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        self.logger.info("Signing transaction as %s", self.pubkey)
        transaction.partial_sign([self._keypair], transaction.message.recent_blockhash)
        return transaction
