"""Marketplace — settlement core for listings, direct sales, bids and lazy mints.

Every public mutating method runs as one ``Runtime`` call: validation
first, then collaborator side effects, then the listing transition.  If
anything raises, the runtime rolls back the listing registry and every
registered collaborator, and no event is published.

Usage::

    runtime = Runtime(event_bus=EventBus())
    market = Marketplace(
        address=MARKET,
        domain_name="NFT_MARKETPLACE",
        domain_version="1",
        chain_id=1,
        runtime=runtime,
        native=ledger,
        collections=[erc721],
        payment_tokens=[weth],
    )
    await market.initialize(MarketConfig(commission_bps=250, treasury=TREASURY), sender=DEPLOYER)

    listing_id = await market.add_listing(1, price, details, sender=seller)
    await market.buy_item(erc721.address, token_id, listing_id, sender=buyer, value=price)
"""

from __future__ import annotations

from typing import Iterable

import structlog
from web3 import Web3

from config.settings import Settings, settings as default_settings
from core.errors import (
    AlreadyCancelled,
    AlreadyInitialized,
    AlreadySold,
    InsufficientFunds,
    InvalidConfiguration,
    InvalidSignature,
    ListingMismatch,
    ListingNotFound,
    NotInitialized,
    NotOwnerOrNotApproved,
    PriceBelowMinimum,
    TransferNotApproved,
    Unauthorized,
    UnknownContract,
)
from core.runtime import CallContext, Runtime, Stateful
from models.events import ItemCancelled, ItemRedeemed, ItemSold, ListingCreated
from models.listing import ItemDetails, Listing, TokenType
from models.market_config import BPS_DENOMINATOR, MarketConfig
from models.vouchers import BID_VOUCHER_SCHEMA, NFT_VOUCHER_SCHEMA, BidVoucher, NFTVoucher
from web3_infra.registries import AssetRegistry, NativeCurrency, PaymentToken
from web3_infra.typed_data import SigningDomain, recover_signer

from .fees import FeeSplit, LazyMintQuote, lazy_mint_price, same_account, split, split_lazy_mint
from .listing_registry import BatchCancelResult, ListingRegistry

logger = structlog.get_logger("market.marketplace")

# Per-id failures a best-effort batch cancellation reports instead of raising.
_CANCEL_FAILURES = (Unauthorized, AlreadyCancelled, AlreadySold, ListingNotFound)


class Marketplace:
    """Settlement engine bound to one market address and signing domain.

    Parameters
    ----------
    address:
        Identity of the market itself: operator on asset registries,
        spender on payment tokens, custodian of attached value.
    domain_name, domain_version, chain_id:
        EIP-712 domain vouchers must be signed under.
    runtime:
        Serial execution environment; the market registers its state and
        every stateful collaborator with it.
    native:
        Native currency used by ``buy_item`` and ``redeem``.
    collections:
        Asset registries the market may list and mint on.
    payment_tokens:
        ERC20 tokens accepted by ``finalize_bid``.
    """

    def __init__(
        self,
        address: str,
        domain_name: str,
        domain_version: str,
        chain_id: int,
        runtime: Runtime,
        native: NativeCurrency,
        collections: Iterable[AssetRegistry] = (),
        payment_tokens: Iterable[PaymentToken] = (),
        registry: ListingRegistry | None = None,
    ) -> None:
        self._address = Web3.to_checksum_address(address)
        self._domain = SigningDomain(
            name=domain_name,
            version=domain_version,
            chain_id=chain_id,
            verifying_contract=self._address,
        )
        self._runtime = runtime
        self._native = native
        self._listings = registry if registry is not None else ListingRegistry()
        self._collections: dict[str, AssetRegistry] = {}
        self._payment_tokens: dict[str, PaymentToken] = {}
        self._config: MarketConfig | None = None
        self._owner: str | None = None

        runtime.register(self)
        runtime.register(self._listings)
        self._register_stateful(native)
        for collection in collections:
            self.register_collection(collection)
        for token in payment_tokens:
            self.register_payment_token(token)

    @classmethod
    def from_settings(
        cls,
        runtime: Runtime,
        native: NativeCurrency,
        collections: Iterable[AssetRegistry] = (),
        payment_tokens: Iterable[PaymentToken] = (),
        settings: Settings = default_settings,
    ) -> Marketplace:
        """Build a market whose address and signing domain come from *settings*."""
        return cls(
            address=settings.MARKET_ADDRESS,
            domain_name=settings.SIGNING_DOMAIN_NAME,
            domain_version=settings.SIGNING_DOMAIN_VERSION,
            chain_id=settings.CHAIN_ID,
            runtime=runtime,
            native=native,
            collections=collections,
            payment_tokens=payment_tokens,
        )

    # ── Wiring ───────────────────────────────────────────────────

    def register_collection(self, collection: AssetRegistry) -> None:
        self._collections[Web3.to_checksum_address(collection.address)] = collection
        self._register_stateful(collection)

    def register_payment_token(self, token: PaymentToken) -> None:
        self._payment_tokens[Web3.to_checksum_address(token.address)] = token
        self._register_stateful(token)

    def _register_stateful(self, collaborator: object) -> None:
        if isinstance(collaborator, Stateful):
            self._runtime.register(collaborator)

    # ── Read-only views ──────────────────────────────────────────

    @property
    def address(self) -> str:
        return self._address

    @property
    def domain(self) -> SigningDomain:
        return self._domain

    @property
    def chain_id(self) -> int:
        return self._domain.chain_id

    @property
    def owner(self) -> str | None:
        return self._owner

    @property
    def initialized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> MarketConfig:
        """Commission configuration (read-only).  ``NotInitialized`` before setup."""
        if self._config is None:
            raise NotInitialized()
        return self._config

    def get_listing(self, listing_id: int) -> Listing:
        return self._listings.get(listing_id)

    def listings_for_sale(self) -> list[Listing]:
        return self._listings.listings_for_sale()

    def listings_by_seller(self, seller: str) -> list[Listing]:
        return self._listings.listings_by_seller(seller)

    def quote_sale(self, listing_id: int) -> FeeSplit:
        """How the asking price of *listing_id* would be split today."""
        listing = self._listings.get(listing_id)
        return split(
            listing.asking_price,
            listing.royalty_bps,
            self.config.commission_bps,
            listing.creator,
            listing.seller,
        )

    def quote_redeem(self, voucher: NFTVoucher) -> LazyMintQuote:
        """Payment required to redeem *voucher*."""
        return lazy_mint_price(voucher.min_price, self.config.commission_bps)

    # ── Initialization ───────────────────────────────────────────

    async def initialize(self, config: MarketConfig, sender: str) -> None:
        """One-time setup; *sender* becomes the privileged owner.

        Raises ``AlreadyInitialized`` on any later call.
        """
        async with self._runtime.call(sender=sender, label="initialize"):
            if self._config is not None:
                raise AlreadyInitialized()
            self._config = config
            self._owner = Web3.to_checksum_address(sender)

        logger.info(
            "marketplace.initialized",
            market=self._address,
            owner=self._owner,
            commission_bps=config.commission_bps,
            treasury=config.treasury,
            minimum_asking_price=config.minimum_asking_price,
        )

    # ── Listing registry ─────────────────────────────────────────

    async def add_listing(
        self,
        amount: int,
        asking_price: int,
        details: ItemDetails,
        sender: str,
    ) -> int:
        """List *amount* of ``details.token_id`` at *asking_price*; return the listing id.

        The caller must hold the quantity and have approved the market as
        operator on the collection.
        """
        async with self._runtime.call(sender=sender, label="add_listing") as ctx:
            config = self.config
            sender = Web3.to_checksum_address(sender)

            if amount < 1 or (details.token_type is TokenType.ERC721 and amount != 1):
                raise InvalidConfiguration(
                    "invalid listing amount", amount=amount, token_type=details.token_type.value
                )
            if asking_price < config.minimum_asking_price:
                raise PriceBelowMinimum(required=config.minimum_asking_price, provided=asking_price)
            if details.royalty_bps + config.commission_bps > BPS_DENOMINATOR:
                raise InvalidConfiguration(
                    "royalty plus commission exceeds 100%",
                    royalty_bps=details.royalty_bps,
                    commission_bps=config.commission_bps,
                )

            collection = self._collection(details.token_address)
            held = await collection.balance_of(sender, details.token_id)
            approved = await collection.is_approved_for_all(sender, self._address)
            if held < amount or not approved:
                raise NotOwnerOrNotApproved(
                    token_address=details.token_address,
                    token_id=details.token_id,
                    held=held,
                    amount=amount,
                    approved=approved,
                )

            listing = self._listings.create(amount, asking_price, details, sender)
            ctx.emit(
                ListingCreated(
                    id=listing.id,
                    token_id=listing.token_id,
                    token_address=listing.token_address,
                    asking_price=listing.asking_price,
                    royalty=listing.royalty_bps,
                    creator=listing.creator,
                    seller=listing.seller,
                    amount=listing.amount,
                )
            )
        return listing.id

    async def cancel_sale(self, listing_id: int, sender: str) -> Listing:
        """Cancel a listing.  Seller or owner only; fails on a second attempt."""
        async with self._runtime.call(sender=sender, label="cancel_sale") as ctx:
            self._require_initialized()
            listing = self._listings.cancel(listing_id, sender, operator=self._owner)
            ctx.emit(ItemCancelled(id=listing_id))
        return listing

    async def batch_cancel_sale(self, listing_ids: Iterable[int], sender: str) -> BatchCancelResult:
        """Cancel several listings, best effort.

        Each id is an independent transition: a failing id is reported in
        ``failed`` and leaves earlier cancellations in place.
        """
        result = BatchCancelResult()
        async with self._runtime.call(sender=sender, label="batch_cancel_sale") as ctx:
            self._require_initialized()
            for listing_id in listing_ids:
                try:
                    self._listings.cancel(listing_id, sender, operator=self._owner)
                except _CANCEL_FAILURES as exc:
                    result.failed[listing_id] = exc
                    logger.warning(
                        "marketplace.batch_cancel_skipped",
                        listing_id=listing_id,
                        error=type(exc).__name__,
                    )
                    continue
                result.cancelled.append(listing_id)
                ctx.emit(ItemCancelled(id=listing_id))

        logger.info(
            "marketplace.batch_cancelled",
            cancelled=len(result.cancelled),
            failed=len(result.failed),
        )
        return result

    # ── Direct sale ──────────────────────────────────────────────

    async def buy_item(
        self,
        token_address: str,
        token_id: int,
        listing_id: int,
        sender: str,
        value: int,
    ) -> ItemSold:
        """Buy a listed item with attached native value.

        Value above the asking price is refunded to the buyer.
        """
        async with self._runtime.call(sender=sender, value=value, label="buy_item") as ctx:
            config = self.config
            buyer = Web3.to_checksum_address(sender)
            listing = self._listings.require_active(listing_id)
            self._check_matches(listing, token_address, token_id)

            if value < listing.asking_price:
                raise InsufficientFunds(
                    required=listing.asking_price, provided=value, listing_id=listing_id
                )

            collection = self._collection(listing.token_address)
            if not await collection.is_approved_for_all(listing.seller, self._address):
                raise TransferNotApproved(
                    "seller revoked market approval", listing_id=listing_id, seller=listing.seller
                )
            held = await collection.balance_of(listing.seller, listing.token_id)
            if held < listing.amount:
                raise TransferNotApproved(
                    "seller no longer holds the listed amount",
                    listing_id=listing_id,
                    held=held,
                    amount=listing.amount,
                )

            fees = split(
                listing.asking_price,
                listing.royalty_bps,
                config.commission_bps,
                listing.creator,
                listing.seller,
            )

            await collection.safe_transfer_from(
                self._address, listing.seller, buyer, listing.token_id, listing.amount
            )
            await self._take_value(ctx)
            await self._pay_native(listing.seller, fees.seller_amount)
            await self._pay_native(listing.creator, fees.royalty_amount)
            await self._pay_native(config.treasury, fees.commission_amount)
            await self._pay_native(buyer, value - listing.asking_price)

            self._listings.mark_sold(listing_id, buyer)
            event = ItemSold(
                id=listing_id,
                buyer=buyer,
                token_id=listing.token_id,
                token_address=listing.token_address,
                asking_price=listing.asking_price,
                price=listing.asking_price,
            )
            ctx.emit(event)

        self._log_sale("marketplace.item_sold", listing, buyer, fees)
        return event

    # ── Bid voucher settlement ───────────────────────────────────

    async def finalize_bid(self, voucher: BidVoucher, buyer: str, sender: str) -> ItemSold:
        """Accept a signed bid on behalf of the listing's seller (or the owner).

        The bid amount is pulled from *buyer* in ``voucher.asset``, which
        needs a prior allowance to the market.
        """
        async with self._runtime.call(sender=sender, label="finalize_bid") as ctx:
            config = self.config
            buyer = Web3.to_checksum_address(buyer)
            listing = self._listings.get(voucher.market_id)
            if not self._is_seller_or_owner(sender, listing):
                raise Unauthorized(listing_id=listing.id, sender=sender)

            signer = self._recover(voucher)
            if signer != buyer:
                raise InvalidSignature(
                    "bid voucher not signed by buyer", signer=signer, buyer=buyer
                )

            listing = self._listings.require_active(voucher.market_id)
            self._check_matches(listing, voucher.token_address, voucher.token_id)
            token = self._payment_token(voucher.asset)
            collection = self._collection(listing.token_address)

            await token.transfer_from(self._address, buyer, self._address, voucher.bid)
            fees = split(
                voucher.bid,
                listing.royalty_bps,
                config.commission_bps,
                listing.creator,
                listing.seller,
            )
            await collection.safe_transfer_from(
                self._address, listing.seller, buyer, listing.token_id, listing.amount
            )
            for recipient, amount in (
                (listing.seller, fees.seller_amount),
                (listing.creator, fees.royalty_amount),
                (config.treasury, fees.commission_amount),
            ):
                if amount:
                    await token.transfer(self._address, recipient, amount)

            self._listings.mark_sold(listing.id, buyer)
            event = ItemSold(
                id=listing.id,
                buyer=buyer,
                token_id=listing.token_id,
                token_address=listing.token_address,
                asking_price=listing.asking_price,
                price=voucher.bid,
            )
            ctx.emit(event)

        self._log_sale("marketplace.bid_finalized", listing, buyer, fees)
        return event

    # ── Mint voucher redemption ──────────────────────────────────

    async def redeem(self, voucher: NFTVoucher, buyer: str, sender: str, value: int) -> ItemRedeemed:
        """Mint ``voucher.token_id`` to its creator and sell it to *buyer*.

        *sender* attaches *value*, which must cover ``min_price`` plus
        commission on it.  The creator receives ``min_price``; the
        treasury receives the rest.  ``voucher.royalty`` is not paid out.
        """
        async with self._runtime.call(sender=sender, value=value, label="redeem") as ctx:
            config = self.config
            buyer = Web3.to_checksum_address(buyer)
            creator = self._recover(voucher)
            payout = split_lazy_mint(value, voucher.min_price, config.commission_bps)
            collection = self._collection(voucher.token_address)

            await collection.mint(self._address, creator, voucher.token_id, voucher.uri)
            await collection.safe_transfer_from(self._address, creator, buyer, voucher.token_id, 1)
            await self._take_value(ctx)
            await self._pay_native(creator, payout.creator_amount)
            await self._pay_native(config.treasury, payout.treasury_amount)

            event = ItemRedeemed(
                buyer=buyer,
                token_id=voucher.token_id,
                token_address=voucher.token_address,
                price=value,
            )
            ctx.emit(event)

        logger.info(
            "marketplace.redeemed",
            token_address=voucher.token_address,
            token_id=voucher.token_id,
            creator=creator,
            buyer=buyer,
            creator_amount=payout.creator_amount,
            treasury_amount=payout.treasury_amount,
        )
        return event

    # ── Internals ────────────────────────────────────────────────

    def _require_initialized(self) -> None:
        if self._config is None:
            raise NotInitialized()

    def _collection(self, token_address: str) -> AssetRegistry:
        collection = self._collections.get(Web3.to_checksum_address(token_address))
        if collection is None:
            raise UnknownContract(token_address=token_address)
        return collection

    def _payment_token(self, asset: str) -> PaymentToken:
        token = self._payment_tokens.get(Web3.to_checksum_address(asset))
        if token is None:
            raise UnknownContract("payment token not accepted", asset=asset)
        return token

    def _is_seller_or_owner(self, sender: str, listing: Listing) -> bool:
        if same_account(sender, listing.seller):
            return True
        return self._owner is not None and same_account(sender, self._owner)

    def _recover(self, voucher: BidVoucher | NFTVoucher) -> str:
        if not voucher.signature:
            raise InvalidSignature("voucher is not signed")
        schema = BID_VOUCHER_SCHEMA if isinstance(voucher, BidVoucher) else NFT_VOUCHER_SCHEMA
        return recover_signer(self._domain, schema, voucher.typed_message(), voucher.signature)

    @staticmethod
    def _check_matches(listing: Listing, token_address: str, token_id: int) -> None:
        if not same_account(token_address, listing.token_address) or token_id != listing.token_id:
            raise ListingMismatch(
                listing_id=listing.id,
                token_address=token_address,
                token_id=token_id,
            )

    async def _take_value(self, ctx: CallContext) -> None:
        """Move the value attached to the call into market custody."""
        if ctx.value:
            await self._native.transfer(ctx.sender, self._address, ctx.value)

    async def _pay_native(self, recipient: str, amount: int) -> None:
        if amount:
            await self._native.transfer(self._address, recipient, amount)

    def _log_sale(self, event: str, listing: Listing, buyer: str, fees: FeeSplit) -> None:
        logger.info(
            event,
            listing_id=listing.id,
            token_address=listing.token_address,
            token_id=listing.token_id,
            buyer=buyer,
            seller=listing.seller,
            seller_amount=fees.seller_amount,
            royalty_amount=fees.royalty_amount,
            commission_amount=fees.commission_amount,
        )

    # ── Runtime snapshot protocol ────────────────────────────────

    def snapshot(self) -> tuple[MarketConfig | None, str | None]:
        return self._config, self._owner

    def restore(self, state: tuple[MarketConfig | None, str | None]) -> None:
        self._config, self._owner = state
