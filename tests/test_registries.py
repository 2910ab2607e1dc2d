"""Tests for web3_infra/registries.py in-memory collaborators."""

from __future__ import annotations

import pytest

from core.errors import AlreadyRedeemed, InsufficientBalance, InsufficientFunds, RegistryRevert, TransferNotApproved
from core.runtime import Stateful
from web3_infra.registries import (
    AssetRegistry,
    InMemoryERC20,
    InMemoryERC721,
    InMemoryERC1155,
    InMemoryNativeLedger,
    NativeCurrency,
    PaymentToken,
)

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
MARKET = "0x" + "cc" * 20


class TestProtocols:

    def test_in_memory_types_satisfy_protocols(self) -> None:
        assert isinstance(InMemoryERC721("0x" + "01" * 20), AssetRegistry)
        assert isinstance(InMemoryERC1155("0x" + "02" * 20), AssetRegistry)
        assert isinstance(InMemoryNativeLedger(), NativeCurrency)
        assert isinstance(InMemoryERC20("0x" + "03" * 20), PaymentToken)
        assert isinstance(InMemoryERC20("0x" + "03" * 20), Stateful)


class TestERC721:

    @pytest.fixture
    def nft(self) -> InMemoryERC721:
        return InMemoryERC721("0x" + "01" * 20)

    @pytest.mark.asyncio
    async def test_mint_and_transfer_by_operator(self, nft: InMemoryERC721) -> None:
        await nft.mint(ALICE, ALICE, 1, "ipfs://1")
        await nft.set_approval_for_all(ALICE, MARKET, True)
        await nft.safe_transfer_from(MARKET, ALICE, BOB, 1)
        assert await nft.balance_of(BOB, 1) == 1
        assert nft.call_counts["safe_transfer_from"] == 1

    @pytest.mark.asyncio
    async def test_unapproved_operator(self, nft: InMemoryERC721) -> None:
        await nft.mint(ALICE, ALICE, 1, "ipfs://1")
        with pytest.raises(TransferNotApproved, match="ERC721: transfer caller is not owner nor approved"):
            await nft.safe_transfer_from(MARKET, ALICE, BOB, 1)

    @pytest.mark.asyncio
    async def test_double_mint(self, nft: InMemoryERC721) -> None:
        await nft.mint(ALICE, ALICE, 1, "ipfs://1")
        with pytest.raises(AlreadyRedeemed, match="already minted"):
            await nft.mint(ALICE, BOB, 1, "ipfs://1")

    @pytest.mark.asyncio
    async def test_trusted_operator_is_only_minter(self) -> None:
        lazy = InMemoryERC721("0x" + "01" * 20, trusted_operator=MARKET)
        with pytest.raises(RegistryRevert, match="not the minter"):
            await lazy.mint(ALICE, ALICE, 1, "ipfs://1")
        await lazy.mint(MARKET, ALICE, 1, "ipfs://1")
        assert await lazy.is_approved_for_all(ALICE, MARKET)

    @pytest.mark.asyncio
    async def test_snapshot_restore(self, nft: InMemoryERC721) -> None:
        state = nft.snapshot()
        await nft.mint(ALICE, ALICE, 1, "ipfs://1")
        nft.restore(state)
        assert not await nft.exists(1)


class TestERC1155:

    @pytest.mark.asyncio
    async def test_partial_transfer(self) -> None:
        editions = InMemoryERC1155("0x" + "02" * 20)
        await editions.mint(ALICE, ALICE, 5, "ipfs://5", amount=10)
        await editions.safe_transfer_from(ALICE, ALICE, BOB, 5, 4)
        assert await editions.balance_of(ALICE, 5) == 6
        assert await editions.balance_of(BOB, 5) == 4

    @pytest.mark.asyncio
    async def test_insufficient_balance(self) -> None:
        editions = InMemoryERC1155("0x" + "02" * 20)
        await editions.mint(ALICE, ALICE, 5, "ipfs://5", amount=1)
        with pytest.raises(RegistryRevert, match="insufficient balance"):
            await editions.safe_transfer_from(ALICE, ALICE, BOB, 5, 2)


class TestNativeLedger:

    @pytest.mark.asyncio
    async def test_transfer(self) -> None:
        ledger = InMemoryNativeLedger()
        ledger.fund(ALICE, 100)
        await ledger.transfer(ALICE, BOB, 40)
        assert await ledger.balance_of(ALICE) == 60
        assert await ledger.balance_of(BOB) == 40

    @pytest.mark.asyncio
    async def test_overdraft(self) -> None:
        ledger = InMemoryNativeLedger()
        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger.transfer(ALICE, BOB, 1)
        assert isinstance(exc_info.value, InsufficientFunds)
        assert exc_info.value.required == 1
        assert exc_info.value.provided == 0


class TestERC20:

    @pytest.fixture
    def weth(self) -> InMemoryERC20:
        token = InMemoryERC20("0x" + "03" * 20)
        token.deposit(ALICE, 100)
        return token

    @pytest.mark.asyncio
    async def test_transfer_from_consumes_allowance(self, weth: InMemoryERC20) -> None:
        await weth.approve(ALICE, MARKET, 60)
        await weth.transfer_from(MARKET, ALICE, BOB, 50)
        assert await weth.balance_of(BOB) == 50
        assert await weth.allowance(ALICE, MARKET) == 10

    @pytest.mark.asyncio
    async def test_allowance_checked_before_balance(self, weth: InMemoryERC20) -> None:
        with pytest.raises(TransferNotApproved, match="ERC20: insufficient allowance"):
            await weth.transfer_from(MARKET, ALICE, BOB, 500)

    @pytest.mark.asyncio
    async def test_balance_checked(self, weth: InMemoryERC20) -> None:
        await weth.approve(ALICE, MARKET, 500)
        with pytest.raises(InsufficientBalance, match="ERC20: transfer amount exceeds balance"):
            await weth.transfer_from(MARKET, ALICE, BOB, 500)
