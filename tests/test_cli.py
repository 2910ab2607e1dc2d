"""Tests for cli/voucher_tool.py."""

from __future__ import annotations

import json

import pytest
from eth_account import Account

from cli.voucher_tool import build_parser, cmd_sign_bid, cmd_sign_mint, main
from models.vouchers import BID_VOUCHER_SCHEMA, NFT_VOUCHER_SCHEMA, BidVoucher, NFTVoucher
from web3_infra.typed_data import SigningDomain, recover_signer

KEY = "0x" + "5e" * 32
MARKET = "0x" + "ab" * 20
CREATOR = "0x" + "11" * 20
SELLER = "0x" + "22" * 20
DOMAIN_ARGS = ["--market", MARKET, "--chain-id", "1337", "--key", KEY]


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # main() would otherwise bind the root handler to the captured stderr.
    monkeypatch.setattr("cli.voucher_tool.setup_logging", lambda: None)


def _domain() -> SigningDomain:
    return SigningDomain(name="NFT_MARKETPLACE", version="1", chain_id=1337, verifying_contract=MARKET)


class TestQuotes:

    def test_quote(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(
            ["quote", "--price", str(10**18), "--royalty-bps", "1000", "--commission-bps", "250",
             "--creator", CREATOR, "--seller", SELLER]
        )
        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["commission_amount"] == 25 * 10**15
        assert out["royalty_amount"] == 10**17
        assert out["seller_amount"] == 875 * 10**15

    def test_lazy_quote(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["lazy-quote", "--min-price", str(10**18), "--commission-bps", "250"])
        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["required"] == 1025 * 10**15

    def test_invalid_rate_exits_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["lazy-quote", "--min-price", "1", "--commission-bps", "20000"])
        assert code == 2
        assert "ERROR" in capsys.readouterr().err


class TestSigning:

    @pytest.mark.asyncio
    async def test_sign_mint(self) -> None:
        args = build_parser().parse_args(
            [*DOMAIN_ARGS, "sign-mint", "--token-address", CREATOR, "--token-id", "3",
             "--uri", "ipfs://3", "--min-price", "1000", "--royalty", "5"]
        )
        result = await cmd_sign_mint(args)
        voucher = NFTVoucher.model_validate(result["voucher"])
        assert result["signer"] == Account.from_key(KEY).address
        assert recover_signer(_domain(), NFT_VOUCHER_SCHEMA, voucher.typed_message(), voucher.signature) == result["signer"]

    @pytest.mark.asyncio
    async def test_sign_bid(self) -> None:
        args = build_parser().parse_args(
            [*DOMAIN_ARGS, "sign-bid", "--asset", SELLER, "--token-address", CREATOR, "--token-id", "3",
             "--market-id", "0", "--bid", "1000"]
        )
        result = await cmd_sign_bid(args)
        voucher = BidVoucher.model_validate(result["voucher"])
        assert voucher.market_id == 0
        assert recover_signer(_domain(), BID_VOUCHER_SCHEMA, voucher.typed_message(), voucher.signature) == result["signer"]
