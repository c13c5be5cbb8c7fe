"""Command line front-end: browse validators, list stake accounts, stake and unstake."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from solders.pubkey import Pubkey

from .builder import StakeTransactionBuilder
from .config import load_config
from .errors import ConfigurationError, NetworkUnavailable
from .models import TransactionOutcome
from .network_state import NetworkStateReader
from .orchestrator import StakeOrchestrator
from .retry import RetryingFetcher
from .rpc import SolanaRPCClient
from .signer import KeypairSigner, TransactionSigner
from .submitter import TransactionSubmitter
from .view import SORT_OPTIONS, SortKey, ValidatorView

logger = logging.getLogger("validator_staking")


def build_orchestrator(
    client: SolanaRPCClient,
    config: Dict[str, Any],
    signer: Optional[TransactionSigner] = None,
) -> StakeOrchestrator:
    fetcher = RetryingFetcher(config["max_retries"], config["initial_backoff_seconds"])
    return StakeOrchestrator(
        reader=NetworkStateReader(client, fetcher),
        builder=StakeTransactionBuilder(client, fetcher, minimum_stake=config["minimum_stake_sol"]),
        submitter=TransactionSubmitter(
            client,
            fetcher,
            commitment=config["commitment"],
            confirm_timeout=config["confirm_timeout_seconds"],
            poll_interval=config["confirm_poll_interval_seconds"],
        ),
        signer=signer,
        view=ValidatorView(page_size=config["page_size"]),
        explorer_tx_url=config["explorer_tx_url"],
    )


def render_table(title: str, rows: List[Dict[str, Any]]) -> None:
    if not rows:
        logger.warning("%s: nothing to display", title)
        return
    frame = pd.DataFrame(rows)
    logger.info("%s:\n%s", title, frame.to_string(index=False, justify="center"))


def write_json_output(output_path: Path, context: Dict[str, Any], rows: List[Dict[str, Any]]) -> None:
    payload = {"metadata": context, "validators": rows}
    output_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info("Wrote JSON report to %s", output_path)


def write_csv_output(output_path: Path, rows: List[Dict[str, Any]]) -> None:
    pd.DataFrame(rows).to_csv(output_path, index=False)
    logger.info("Wrote CSV report to %s", output_path)


def report_outcome(outcome: TransactionOutcome) -> int:
    if outcome.ok:
        logger.info("%s", outcome.message)
        return 0
    logger.error("%s", outcome.message)
    return 1


async def cmd_validators(orchestrator: StakeOrchestrator, args: argparse.Namespace) -> int:
    if not await orchestrator.refresh_validators():
        logger.error("%s", orchestrator.validator_error)
        return 1
    view = orchestrator.view
    view.set_search(args.search or "")
    view.set_sort(SortKey.parse(args.sort))
    view.go_to_page(args.page)

    if not view.visible:
        logger.warning("No validators found. Please try a different search term.")
        return 0
    render_table(f"Validators (page {view.page} of {view.total_pages})", view.page_rows())

    rows = [record.to_row() for record in view.visible]
    context = {
        "generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "search": view.search,
        "sort": str(view.sort_key),
        "validator_count": len(rows),
    }
    if args.json:
        write_json_output(Path(args.json), context, rows)
    if args.csv:
        write_csv_output(Path(args.csv), rows)
    return 0


async def cmd_stake_accounts(orchestrator: StakeOrchestrator, args: argparse.Namespace) -> int:
    owner = args.owner if args.owner is not None else orchestrator.wallet
    if owner is None:
        logger.error("Pass --owner or --keypair to list stake accounts")
        return 1
    try:
        records = await orchestrator.reader.fetch_stake_accounts(owner)
    except NetworkUnavailable as exc:
        logger.error("%s", exc)
        return 1
    if not records:
        logger.info("You don't have any active stake accounts.")
        return 0
    render_table("Stake accounts", [record.to_row() for record in records])
    return 0


async def cmd_stake(orchestrator: StakeOrchestrator, args: argparse.Namespace) -> int:
    return report_outcome(await orchestrator.stake(args.validator, args.amount))


async def cmd_unstake(orchestrator: StakeOrchestrator, args: argparse.Namespace) -> int:
    await orchestrator.refresh_stake_accounts()
    return report_outcome(await orchestrator.unstake(args.stake_account))


COMMANDS = {
    "validators": cmd_validators,
    "stake-accounts": cmd_stake_accounts,
    "stake": cmd_stake,
    "unstake": cmd_unstake,
}


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from exc


def _pubkey(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # pylint: disable=broad-except
        raise argparse.ArgumentTypeError(f"invalid public key: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="validator-staking", description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="Path to a JSON config file")
    parser.add_argument("--keypair", type=Path, default=None, help="Solana CLI keypair file used for signing")
    parser.add_argument("--rpc", default=None, help="Override the RPC endpoint")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validators = subparsers.add_parser("validators", help="List validators")
    validators.add_argument("--search", default="", help="Filter by vote or identity address")
    validators.add_argument("--sort", default="commission-asc", choices=SORT_OPTIONS)
    validators.add_argument("--page", type=int, default=1)
    validators.add_argument("--json", default=None, help="Write the filtered list to a JSON file")
    validators.add_argument("--csv", default=None, help="Write the filtered list to a CSV file")

    accounts = subparsers.add_parser("stake-accounts", help="List stake accounts owned by a wallet")
    accounts.add_argument("--owner", type=_pubkey, default=None)

    stake = subparsers.add_parser("stake", help="Create and delegate a new stake account")
    stake.add_argument("validator", type=_pubkey, help="Validator vote account")
    stake.add_argument("amount", type=_decimal, help="Amount in SOL")

    unstake = subparsers.add_parser("unstake", help="Deactivate a stake account")
    unstake.add_argument("stake_account", type=_pubkey)
    return parser


async def run(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    if args.rpc:
        config["rpc_endpoint"] = args.rpc

    logging.basicConfig(
        level=getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    keypair_path = args.keypair or config.get("keypair_path")
    signer = KeypairSigner.from_file(Path(keypair_path)) if keypair_path else None
    if args.command in {"stake", "unstake"} and signer is None:
        raise ConfigurationError("A keypair is required to sign; pass --keypair or set 'keypair_path'.")

    async with SolanaRPCClient(
        config["rpc_endpoint"],
        config["concurrency_limit"],
        timeout=config["request_timeout"],
    ) as client:
        orchestrator = build_orchestrator(client, config, signer)
        return await COMMANDS[args.command](orchestrator, args)


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        status = asyncio.run(run(argv))
    except ConfigurationError as exc:
        logging.getLogger("validator_staking").error("Fatal error: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logging.getLogger("validator_staking").warning("Execution interrupted by user")
        raise SystemExit(130) from None
    raise SystemExit(status)


if __name__ == "__main__":
    main()
