"""Shared fixtures: actors, in-memory collaborators and an initialized market."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import pytest
from eth_account import Account

from core.event_bus import EventBus
from core.runtime import Runtime
from market.marketplace import Marketplace
from models.listing import ItemDetails, TokenType
from models.market_config import MarketConfig
from web3_infra.registries import InMemoryERC20, InMemoryERC721, InMemoryERC1155, InMemoryNativeLedger
from web3_infra.typed_data import SigningDomain
from web3_infra.voucher_signer import sign_typed_sync

ETH = 10**18

MARKET_ADDRESS = Account.from_key("0x" + "a1" * 32).address
TREASURY = Account.from_key("0x" + "a2" * 32).address
NFT_ADDRESS = "0x" + "11" * 20
EDITIONS_ADDRESS = "0x" + "22" * 20
LAZY_ADDRESS = "0x" + "33" * 20
WETH_ADDRESS = "0x" + "44" * 20

CHAIN_ID = 1337
DOMAIN_NAME = "NFT_MARKETPLACE"
DOMAIN_VERSION = "1"
COMMISSION_BPS = 250

URI = "ipfs://bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


@dataclass(frozen=True)
class Actor:
    key: str
    address: str


def _actor(seed: int) -> Actor:
    key = "0x" + f"{seed:064x}"
    return Actor(key=key, address=Account.from_key(key).address)


@dataclass(frozen=True)
class Actors:
    deployer: Actor
    seller: Actor
    creator: Actor
    buyer: Actor
    stranger: Actor


def sign_voucher(voucher: Any, key: str, domain: SigningDomain) -> Any:
    """Synchronous signing for tests; no process pool."""
    signature = sign_typed_sync(domain, voucher.schema_, voucher.typed_message(), key)
    return voucher.with_signature(signature)


@pytest.fixture
def actors() -> Actors:
    return Actors(
        deployer=_actor(101),
        seller=_actor(102),
        creator=_actor(103),
        buyer=_actor(104),
        stranger=_actor(105),
    )


@pytest.fixture
def domain() -> SigningDomain:
    return SigningDomain(
        name=DOMAIN_NAME,
        version=DOMAIN_VERSION,
        chain_id=CHAIN_ID,
        verifying_contract=MARKET_ADDRESS,
    )


@pytest.fixture
def ledger(actors: Actors) -> InMemoryNativeLedger:
    native = InMemoryNativeLedger()
    native.fund(actors.buyer.address, 10 * ETH)
    native.fund(actors.stranger.address, 10 * ETH)
    return native


@pytest.fixture
def weth() -> InMemoryERC20:
    return InMemoryERC20(WETH_ADDRESS)


@pytest.fixture
def nft() -> InMemoryERC721:
    return InMemoryERC721(NFT_ADDRESS, name="Art")


@pytest.fixture
def editions() -> InMemoryERC1155:
    return InMemoryERC1155(EDITIONS_ADDRESS, name="Editions")


@pytest.fixture
def lazy_nft() -> InMemoryERC721:
    return InMemoryERC721(LAZY_ADDRESS, name="Lazy", trusted_operator=MARKET_ADDRESS)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def runtime(bus: EventBus) -> Runtime:
    return Runtime(event_bus=bus)


@pytest.fixture
def config() -> MarketConfig:
    return MarketConfig(commission_bps=COMMISSION_BPS, treasury=TREASURY)


@pytest.fixture
def raw_market(
    runtime: Runtime,
    ledger: InMemoryNativeLedger,
    nft: InMemoryERC721,
    editions: InMemoryERC1155,
    lazy_nft: InMemoryERC721,
    weth: InMemoryERC20,
) -> Marketplace:
    """Wired but not yet initialized."""
    return Marketplace(
        address=MARKET_ADDRESS,
        domain_name=DOMAIN_NAME,
        domain_version=DOMAIN_VERSION,
        chain_id=CHAIN_ID,
        runtime=runtime,
        native=ledger,
        collections=[nft, editions, lazy_nft],
        payment_tokens=[weth],
    )


@pytest.fixture
async def market(raw_market: Marketplace, config: MarketConfig, actors: Actors) -> Marketplace:
    await raw_market.initialize(config, sender=actors.deployer.address)
    return raw_market


ListFn = Callable[..., Awaitable[int]]


@pytest.fixture
def list_nft(market: Marketplace, nft: InMemoryERC721, actors: Actors) -> ListFn:
    """Mint ``token_id`` to *owner*, approve the market and list it."""

    async def _list(
        token_id: int,
        price: int = ETH,
        owner: Actor | None = None,
        creator: Actor | None = None,
        royalty_bps: int = 1000,
    ) -> int:
        owner = owner or actors.seller
        creator = creator or owner
        await nft.mint(owner.address, owner.address, token_id, URI)
        await nft.set_approval_for_all(owner.address, market.address, True)
        details = ItemDetails(
            token_type=TokenType.ERC721,
            token_address=nft.address,
            token_id=token_id,
            royalty_bps=royalty_bps,
            creator=creator.address,
        )
        return await market.add_listing(1, price, details, sender=owner.address)

    return _list
