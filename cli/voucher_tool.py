"""Voucher tool CLI — sign vouchers and preview fee splits offline.

Amounts are integers in the smallest currency unit (wei).

Usage:
    python3 -m cli.voucher_tool sign-mint --token-address 0x.. --token-id 1 --uri ipfs://.. --min-price 1000
    python3 -m cli.voucher_tool sign-bid --asset 0x.. --token-address 0x.. --token-id 1 --market-id 0 --bid 1000
    python3 -m cli.voucher_tool quote --price 1000 --royalty-bps 1000 --creator 0x.. --seller 0x..
    python3 -m cli.voucher_tool lazy-quote --min-price 1000

Signing keys come from ``--key`` or ``VOUCHER_PRIVATE_KEY``.  The domain
(market address, chain id, name, version) comes from settings unless
overridden on the command line.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import settings
from core.logger import setup_logging
from market.fees import lazy_mint_price, split
from models.vouchers import BidVoucher, NFTVoucher
from web3_infra.typed_data import SigningDomain
from web3_infra.voucher_signer import VoucherSigner

logger = structlog.get_logger("cli.voucher_tool")


def _domain(args: argparse.Namespace) -> SigningDomain:
    return SigningDomain(
        name=args.domain_name,
        version=args.domain_version,
        chain_id=args.chain_id,
        verifying_contract=args.market,
    )


def _private_key(args: argparse.Namespace) -> str:
    key = args.key or settings.VOUCHER_PRIVATE_KEY
    if not key:
        print("ERROR: no signing key; pass --key or set VOUCHER_PRIVATE_KEY", file=sys.stderr)
        sys.exit(1)
    return key


async def _sign(args: argparse.Namespace, voucher: Any) -> dict[str, Any]:
    async with VoucherSigner(_private_key(args), _domain(args), max_workers=settings.SIGNER_MAX_WORKERS) as signer:
        signed = await signer.sign(voucher)
        logger.debug("voucher_tool.signed", signer=signer.address, primary_type=voucher.schema_.primary_type)
        return {"signer": signer.address, "voucher": signed.model_dump(by_alias=True)}


async def cmd_sign_mint(args: argparse.Namespace) -> dict[str, Any]:
    """Sign a lazy-mint voucher as its creator."""
    voucher = NFTVoucher(
        token_address=args.token_address,
        token_id=args.token_id,
        min_price=args.min_price,
        royalty=args.royalty,
        uri=args.uri,
    )
    return await _sign(args, voucher)


async def cmd_sign_bid(args: argparse.Namespace) -> dict[str, Any]:
    """Sign a bid voucher as the bidder."""
    voucher = BidVoucher(
        asset=args.asset,
        token_address=args.token_address,
        token_id=args.token_id,
        market_id=args.market_id,
        bid=args.bid,
    )
    return await _sign(args, voucher)


async def cmd_quote(args: argparse.Namespace) -> dict[str, Any]:
    """Deductive split of a sale price."""
    fees = split(args.price, args.royalty_bps, args.commission_bps, args.creator, args.seller)
    return {
        "price": args.price,
        "seller_amount": fees.seller_amount,
        "royalty_amount": fees.royalty_amount,
        "commission_amount": fees.commission_amount,
    }


async def cmd_lazy_quote(args: argparse.Namespace) -> dict[str, Any]:
    """Required payment for a mint voucher."""
    quote = lazy_mint_price(args.min_price, args.commission_bps)
    return {
        "min_price": quote.min_price,
        "commission": quote.commission,
        "required": quote.required,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voucher_tool",
        description="Sign market vouchers and preview fee splits",
    )
    parser.add_argument("--market", default=settings.MARKET_ADDRESS, help="Verifying market address")
    parser.add_argument("--chain-id", type=int, default=settings.CHAIN_ID)
    parser.add_argument("--domain-name", default=settings.SIGNING_DOMAIN_NAME)
    parser.add_argument("--domain-version", default=settings.SIGNING_DOMAIN_VERSION)
    parser.add_argument("--key", default="", help="Signer private key (hex)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sign-mint", help="Sign a lazy-mint voucher")
    p.add_argument("--token-address", required=True)
    p.add_argument("--token-id", type=int, required=True)
    p.add_argument("--uri", required=True)
    p.add_argument("--min-price", type=int, default=0)
    p.add_argument("--royalty", type=int, default=0, help="Percentage, informational")
    p.set_defaults(func=cmd_sign_mint)

    p = sub.add_parser("sign-bid", help="Sign a bid voucher")
    p.add_argument("--asset", required=True, help="Payment token address")
    p.add_argument("--token-address", required=True)
    p.add_argument("--token-id", type=int, required=True)
    p.add_argument("--market-id", type=int, required=True, help="Listing id")
    p.add_argument("--bid", type=int, required=True)
    p.set_defaults(func=cmd_sign_bid)

    p = sub.add_parser("quote", help="Split a sale price")
    p.add_argument("--price", type=int, required=True)
    p.add_argument("--royalty-bps", type=int, default=0)
    p.add_argument("--commission-bps", type=int, default=settings.MARKET_COMMISSION_BPS)
    p.add_argument("--creator", required=True)
    p.add_argument("--seller", required=True)
    p.set_defaults(func=cmd_quote)

    p = sub.add_parser("lazy-quote", help="Required payment for a mint voucher")
    p.add_argument("--min-price", type=int, required=True)
    p.add_argument("--commission-bps", type=int, default=settings.MARKET_COMMISSION_BPS)
    p.set_defaults(func=cmd_lazy_quote)

    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(args.func(args))
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
