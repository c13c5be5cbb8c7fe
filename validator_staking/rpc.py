"""Thin async JSON-RPC client for a Solana endpoint.

Each call makes exactly one HTTP request. Retrying is left to
:mod:`validator_staking.retry` so that reads can be retried while
transaction submission never is.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from solders.pubkey import Pubkey

from .errors import RPCError


def summarize_payload(payload: Any, limit: int = 800) -> str:
    try:
        serialized = json.dumps(payload, default=str)
    except TypeError:
        serialized = str(payload)
    if len(serialized) > limit:
        return serialized[: limit - 3] + "..."
    return serialized


class SolanaRPCClient:
    def __init__(
        self,
        endpoint: str,
        concurrency_limit: int = 4,
        timeout: float = 35.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        endpoint = endpoint.strip() if isinstance(endpoint, str) else ""
        if not endpoint:
            raise RPCError("An RPC endpoint must be provided")
        self.endpoint = endpoint
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max(1, concurrency_limit))
        self._request_id = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    async def __aenter__(self) -> "SolanaRPCClient":
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self._client is None:
            raise RuntimeError("RPC client not initialized; use async context manager")

        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params or [],
        }
        async with self._semaphore:
            self.logger.debug("RPC Request -> method=%s payload=%s", method, summarize_payload(payload))
            try:
                response = await self._client.post(self.endpoint, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code if exc.response is not None else None
                raise RPCError(f"HTTP error on method {method}: {exc}", code=status_code) from exc
            except httpx.RequestError as exc:
                raise RPCError(f"Request error on method {method}: {exc}") from exc
            except ValueError as exc:
                raise RPCError(f"Invalid JSON in response to {method}: {exc}") from exc

        self.logger.debug("RPC Response <- method=%s body=%s", method, summarize_payload(data, limit=400))
        if not isinstance(data, dict):
            raise RPCError(f"Malformed response to {method}")
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown RPC error") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            error_data = error.get("data") if isinstance(error, dict) else None
            raise RPCError(f"RPC error on method {method}: {message}", code=code, data=error_data)
        return data.get("result")

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def get_vote_accounts(self) -> Dict[str, Any]:
        return await self.request("getVoteAccounts") or {}

    async def get_epoch_info(self) -> Dict[str, Any]:
        return await self.request("getEpochInfo") or {}

    async def get_parsed_program_accounts(
        self,
        program_id: Pubkey,
        filters: Sequence[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        params = [str(program_id), {"encoding": "jsonParsed", "filters": list(filters)}]
        return await self.request("getProgramAccounts", params) or []

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        result = await self.request("getMinimumBalanceForRentExemption", [size])
        try:
            return int(result)
        except (TypeError, ValueError) as exc:
            raise RPCError(f"Unexpected rent exemption value: {result!r}") from exc

    async def get_latest_blockhash(self, commitment: str = "confirmed") -> Dict[str, Any]:
        result = await self.request("getLatestBlockhash", [{"commitment": commitment}]) or {}
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict) or not value.get("blockhash"):
            raise RPCError("getLatestBlockhash returned no blockhash")
        return value

    async def simulate_transaction(self, raw: bytes, commitment: str = "confirmed") -> Dict[str, Any]:
        config = {
            "encoding": "base64",
            "sigVerify": False,
            "commitment": commitment,
        }
        result = await self.request("simulateTransaction", [_b64(raw), config]) or {}
        return result.get("value") or {}

    async def send_raw_transaction(self, raw: bytes, preflight_commitment: str = "confirmed") -> str:
        config = {"encoding": "base64", "preflightCommitment": preflight_commitment}
        signature = await self.request("sendTransaction", [_b64(raw), config])
        if not signature:
            raise RPCError("sendTransaction returned no signature")
        return str(signature)

    async def get_signature_statuses(self, signatures: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        result = await self.request("getSignatureStatuses", [list(signatures)]) or {}
        return list(result.get("value") or [])


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")
