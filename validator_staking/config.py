"""Configuration loading: JSON file, defaults and environment overrides."""

from __future__ import annotations

import json
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigurationError
from .models import safe_int

CONFIG_FILENAME = "config.json"
DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={api_key}"
VALID_COMMITMENTS = {"processed", "confirmed", "finalized"}


def _positive_float(config: Dict[str, Any], key: str, default: float) -> float:
    value = config.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigurationError(f"'{key}' must be greater than zero.")
    return number


def resolve_rpc_endpoint(config: Dict[str, Any]) -> str:
    endpoint = str(os.getenv("SOLANA_RPC_ENDPOINT") or config.get("rpc_endpoint") or "").strip()
    if endpoint:
        return endpoint
    api_key = str(os.getenv("SOLANA_RPC_API_KEY") or config.get("rpc_api_key") or "").strip()
    if api_key:
        return HELIUS_RPC_TEMPLATE.format(api_key=api_key)
    return DEFAULT_RPC_ENDPOINT


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load settings from an optional JSON file and fill in defaults.

    A missing default ``config.json`` is not an error; a missing file that was
    asked for explicitly is.
    """
    config: Dict[str, Any] = {}
    explicit = config_path is not None
    config_path = Path(config_path) if explicit else Path.cwd() / CONFIG_FILENAME
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            try:
                config = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid JSON in configuration file: {exc}") from exc
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file must contain a JSON object.")
    elif explicit:
        raise ConfigurationError(f"Configuration file not found at {config_path}")

    config["rpc_endpoint"] = resolve_rpc_endpoint(config)

    max_retries = safe_int(config.get("max_retries", 5))
    if max_retries is None or max_retries < 1:
        raise ConfigurationError("'max_retries' must be a positive integer.")
    config["max_retries"] = max_retries

    page_size = safe_int(config.get("page_size", 12))
    if page_size is None or page_size < 1:
        raise ConfigurationError("'page_size' must be a positive integer.")
    config["page_size"] = page_size

    try:
        minimum_stake = Decimal(str(config.get("minimum_stake_sol", "0.001")))
    except InvalidOperation as exc:
        raise ConfigurationError(f"Invalid 'minimum_stake_sol': {config.get('minimum_stake_sol')!r}") from exc
    if minimum_stake <= 0:
        raise ConfigurationError("'minimum_stake_sol' must be greater than zero.")
    config["minimum_stake_sol"] = minimum_stake

    commitment = str(config.get("commitment", "confirmed")).strip().lower()
    if commitment not in VALID_COMMITMENTS:
        raise ConfigurationError(f"'commitment' must be one of {sorted(VALID_COMMITMENTS)}.")
    config["commitment"] = commitment

    config["initial_backoff_seconds"] = _positive_float(config, "initial_backoff_seconds", 1.0)
    config["request_timeout"] = _positive_float(config, "request_timeout", 35.0)
    config["confirm_timeout_seconds"] = _positive_float(config, "confirm_timeout_seconds", 60.0)
    config["confirm_poll_interval_seconds"] = _positive_float(config, "confirm_poll_interval_seconds", 0.5)

    concurrency_limit = safe_int(config.get("concurrency_limit")) or 4
    config["concurrency_limit"] = max(1, concurrency_limit)

    explorer_tx_url = str(config.get("explorer_tx_url") or "https://solscan.io/tx/{signature}")
    if "{signature}" not in explorer_tx_url:
        raise ConfigurationError("'explorer_tx_url' must contain a '{signature}' placeholder.")
    config["explorer_tx_url"] = explorer_tx_url

    keypair_path = config.get("keypair_path") or os.getenv("SOLANA_KEYPAIR")
    config["keypair_path"] = str(keypair_path) if keypair_path else None
    config.setdefault("log_level", "INFO")

    return config
