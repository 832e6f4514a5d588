"""Command line entry point.

Usage:
    hotwallet keygen
    hotwallet generate --chain BTC --network testnet
    hotwallet derive --chain ETH --network mainnet          # prompts for seed phrase
    hotwallet address --chain BTC --network testnet         # prompts for private key
    hotwallet info --chain USDT --network testnet 0xAbC...
    hotwallet send --chain BTC --network testnet --to tb1q... --amount 0.0006
    hotwallet status --chain ETH --network testnet 0x5c50...

Private keys are read from the HOTWALLET_PRIVATE_KEY environment variable
or prompted for; they are never accepted as command line arguments.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from decimal import Decimal
from getpass import getpass
from typing import Optional

from hotwallet.chains import ChainKind
from hotwallet.config import Network, get_settings
from hotwallet.crypto import derive_key_from_password, generate_master_key
from hotwallet.errors import InvalidAmount, WalletError
from hotwallet.fees import FeeQuote, FeeSource
from hotwallet.hdwallet import get_key_deriver
from hotwallet.withdrawal.factory import create_transfer_service

logger = logging.getLogger(__name__)

PRIVATE_KEY_ENV = "HOTWALLET_PRIVATE_KEY"


def configure_logging(debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _print(data: dict) -> None:
    print(json.dumps(data, indent=2, default=str))


def _read_private_key() -> str:
    key = os.environ.get(PRIVATE_KEY_ENV)
    if key:
        return key
    return getpass("Private key: ")


def _fee_hint(args: argparse.Namespace) -> Optional[FeeQuote]:
    network = Network.parse(args.network)
    is_utxo = ChainKind.parse(args.chain).is_utxo
    if args.fee_rate is not None and not is_utxo:
        raise InvalidAmount(f"--fee-rate applies to BTC only, use --gas-price-gwei for {args.chain}")
    if args.gas_price_gwei is not None and is_utxo:
        raise InvalidAmount("--gas-price-gwei does not apply to BTC, use --fee-rate")

    if args.fee_rate is not None:
        return FeeQuote(network=network, source=FeeSource.LIVE, fee_rate_per_byte=Decimal(args.fee_rate))
    if args.gas_price_gwei is not None:
        wei = int(Decimal(args.gas_price_gwei) * 10**9)
        return FeeQuote(network=network, source=FeeSource.LIVE, gas_price=wei, max_fee_per_gas=wei)
    return None


def cmd_keygen(args: argparse.Namespace) -> int:
    if args.passphrase:
        passphrase = getpass("Passphrase: ")
        key, salt = derive_key_from_password(passphrase)
        _print({"master_key": key, "salt": salt.hex()})
    else:
        _print({"master_key": generate_master_key()})
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    if args.show_secrets:
        key = get_key_deriver(args.chain).generate(Network.parse(args.network))
        data = key.public_dict()
        data["private_key"] = key.private_key
        data["mnemonic"] = key.mnemonic
        _print(data)
        return 0

    service = create_transfer_service()
    _print(service.generate_wallet(args.chain, args.network).to_dict())
    return 0


def cmd_derive(args: argparse.Namespace) -> int:
    print("Enter your seed phrase (12 or 24 words):", file=sys.stderr)
    mnemonic = getpass("Seed phrase: ")

    words = mnemonic.strip().split()
    if len(words) not in [12, 24]:
        print(f"Error: Expected 12 or 24 words, got {len(words)}", file=sys.stderr)
        return 1

    key = get_key_deriver(args.chain).from_mnemonic(
        " ".join(words), Network.parse(args.network), index=args.index
    )
    _print(key.public_dict())
    return 0


def cmd_address(args: argparse.Namespace) -> int:
    deriver = get_key_deriver(args.chain)
    network = Network.parse(args.network)
    _print({
        "chain": ChainKind.parse(args.chain).value,
        "network": network.value,
        "address": deriver.derive_address(_read_private_key(), network),
    })
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    service = create_transfer_service()
    info = asyncio.run(service.get_wallet_info(args.chain, args.address, args.network))
    _print(info.to_dict())
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    fee_hint = _fee_hint(args)
    service = create_transfer_service()
    result = asyncio.run(
        service.send_value(
            args.chain,
            args.network,
            _read_private_key(),
            args.to,
            args.amount,
            sender_address=args.sender,
            fee_hint=fee_hint,
        )
    )
    _print(result.to_dict())
    return 0 if result.success else 1


def cmd_status(args: argparse.Namespace) -> int:
    service = create_transfer_service()
    state = asyncio.run(service.get_transaction_status(args.chain, args.network, args.txid))
    _print({"txid": args.txid, "state": state.value, "final": state.is_final})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotwallet", description="Hot wallet transaction engine")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--chain", required=True, help="BTC, ETH or USDT")
        sub.add_argument("--network", default=None, help="testnet or mainnet")

    sub = subparsers.add_parser("keygen", help="Create a master key for encrypting wallets")
    sub.add_argument(
        "--passphrase", action="store_true", help="Derive the key from a prompted passphrase"
    )
    sub.set_defaults(func=cmd_keygen)

    sub = subparsers.add_parser("generate", help="Generate a new wallet")
    add_common(sub)
    sub.add_argument(
        "--show-secrets", action="store_true",
        help="Print the plaintext private key and mnemonic instead of ciphertexts",
    )
    sub.set_defaults(func=cmd_generate)

    sub = subparsers.add_parser("derive", help="Re-import a wallet from its seed phrase")
    add_common(sub)
    sub.add_argument("--index", type=int, default=0, help="Address index")
    sub.set_defaults(func=cmd_derive)

    sub = subparsers.add_parser("address", help="Derive the address of a private key")
    add_common(sub)
    sub.set_defaults(func=cmd_address)

    sub = subparsers.add_parser("info", help="Show balance and recent transactions")
    add_common(sub)
    sub.add_argument("address")
    sub.set_defaults(func=cmd_info)

    sub = subparsers.add_parser("send", help="Send value")
    add_common(sub)
    sub.add_argument("--to", required=True, help="Destination address")
    sub.add_argument("--amount", required=True, help="Amount in whole units, e.g. 0.0006")
    sub.add_argument("--from", dest="sender", default=None, help="Expected sender address")
    sub.add_argument("--fee-rate", default=None, help="BTC fee rate override (sat/byte)")
    sub.add_argument("--gas-price-gwei", default=None, help="ETH gas price override (gwei)")
    sub.set_defaults(func=cmd_send)

    sub = subparsers.add_parser("status", help="Check transaction status")
    add_common(sub)
    sub.add_argument("txid")
    sub.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.debug or settings.debug)

    if getattr(args, "network", "") is None:
        args.network = settings.default_network

    try:
        return args.func(args)
    except (WalletError, ValueError) as e:
        code = getattr(e, "code", "invalid_argument")
        _print({"error": code, "details": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
