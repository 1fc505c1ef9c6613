"""Operator command line.

Usage:
    python -m rollup_tx address
    python -m rollup_tx nonce
    python -m rollup_tx activate-desert-mode --gas-price 5000000000
    python -m rollup_tx withdraw-nft --nft-index 7 --nonce 12
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rollup_tx.chain.client import JsonRpcChainClient
from rollup_tx.config import Settings, get_settings
from rollup_tx.errors import ConfigurationError, RollupTxError
from rollup_tx.rollup.contract import Web3RollupContract, load_rollup_contract
from rollup_tx.rollup.dispatcher import RollupDispatcher
from rollup_tx.signing.factory import create_signer
from rollup_tx.transact.options import OptionsBuilder, TxType

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rollup_tx", description="Rollup operator transactions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("address", help="Print the operator address")
    subcommands.add_parser("nonce", help="Print the operator's pending nonce")

    def add_tx_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--gas-price", type=int, default=None, help="Gas price in wei")
        sub.add_argument("--gas-limit", type=int, default=None, help="Gas limit")
        sub.add_argument("--nonce", type=int, default=None, help="Explicit nonce")

    add_tx_options(subcommands.add_parser("activate-desert-mode", help="Activate desert mode"))

    withdraw_nft = subcommands.add_parser("withdraw-nft", help="Withdraw a pending NFT balance")
    withdraw_nft.add_argument("--nft-index", type=int, required=True)
    add_tx_options(withdraw_nft)

    return parser


def _tx_type(settings: Settings) -> TxType:
    try:
        return TxType(settings.tx_type)
    except ValueError as e:
        raise ConfigurationError(f"Unknown TX_TYPE: {settings.tx_type}") from e


def _load_contract(chain_client: JsonRpcChainClient, settings: Settings) -> Web3RollupContract:
    """Load the rollup contract from settings.

    Raises:
        ConfigurationError: If ROLLUP_ADDRESS or ROLLUP_ABI_PATH is unset or unusable
    """
    if not settings.rollup_address:
        raise ConfigurationError("ROLLUP_ADDRESS is not set")
    if not settings.rollup_abi_path:
        raise ConfigurationError("ROLLUP_ABI_PATH is not set")

    try:
        return load_rollup_contract(
            chain_client,
            settings.rollup_address,
            settings.rollup_abi_path,
            sign_timeout=settings.kms_timeout,
        )
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot load rollup contract: {e}") from e


async def run(args: argparse.Namespace, settings: Settings) -> str:
    """Execute one CLI command and return its output line."""
    signer = await create_signer(settings)

    if args.command == "address":
        return signer.address

    chain_client = JsonRpcChainClient(settings.rpc_url, timeout=settings.rpc_timeout)

    if args.command == "nonce":
        return str(await chain_client.get_pending_nonce(signer.address))

    tx_type = _tx_type(settings)
    dispatcher = RollupDispatcher(
        _load_contract(chain_client, settings),
        OptionsBuilder(chain_client, timeout=settings.rpc_timeout),
    )
    gas_limit = args.gas_limit if args.gas_limit is not None else settings.default_gas_limit

    if args.command == "activate-desert-mode":
        return await dispatcher.activate_desert_mode(
            signer, settings.chain_id, args.gas_price, gas_limit, nonce=args.nonce, tx_type=tx_type
        )

    if args.command == "withdraw-nft":
        return await dispatcher.withdraw_pending_nft_balance(
            signer,
            settings.chain_id,
            args.nft_index,
            args.gas_price,
            gas_limit,
            nonce=args.nonce,
            tx_type=tx_type,
        )

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        print(asyncio.run(run(args, get_settings())))
    except RollupTxError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
