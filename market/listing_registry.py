"""ListingRegistry — arena of listings keyed by sequential id.

Holds the only shared mutable state of the market.  Rows are frozen
``Listing`` models; every transition swaps in a ``model_copy`` so a
snapshot is a shallow copy of the dict.

Ownership and approval checks against asset registries happen in the
marketplace before ``create`` is called; this class only enforces the
listing state machine:

    ACTIVE ──cancel──▶ CANCELLED
       └────sell────▶ SOLD
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

import structlog

from core.errors import (
    AlreadyCancelled,
    AlreadySold,
    ItemAlreadyCancelled,
    ItemAlreadySold,
    ListingNotFound,
    MarketError,
    Unauthorized,
)
from models.listing import ItemDetails, Listing, ListingStatus

from .fees import same_account

logger = structlog.get_logger("market.listing_registry")


@dataclass
class BatchCancelResult:
    """Outcome of a best-effort batch cancellation."""

    cancelled: list[int] = field(default_factory=list)
    failed: dict[int, MarketError] = field(default_factory=dict)

    @property
    def all_cancelled(self) -> bool:
        return not self.failed


class ListingRegistry:
    """Tracks listings through their lifecycle."""

    def __init__(self) -> None:
        self._listings: dict[int, Listing] = {}
        self._next_id: int = 0

    # ── Transitions ──────────────────────────────────────────────

    def create(self, amount: int, asking_price: int, details: ItemDetails, seller: str) -> Listing:
        """Store a new ACTIVE listing under the next sequential id."""
        listing = Listing(
            id=self._next_id,
            token_type=details.token_type,
            token_address=details.token_address,
            token_id=details.token_id,
            amount=amount,
            asking_price=asking_price,
            seller=seller,
            creator=details.creator,
            royalty_bps=details.royalty_bps,
        )
        self._listings[listing.id] = listing
        self._next_id += 1

        logger.info(
            "listing_registry.created",
            listing_id=listing.id,
            token_address=listing.token_address,
            token_id=listing.token_id,
            amount=amount,
            asking_price=asking_price,
            seller=seller,
        )
        return listing

    def cancel(self, listing_id: int, sender: str, operator: str | None = None) -> Listing:
        """Cancel an ACTIVE listing on behalf of its seller or *operator*.

        Raises ``Unauthorized``, ``AlreadyCancelled`` or ``AlreadySold``.
        """
        listing = self.get(listing_id)
        if not (same_account(sender, listing.seller) or (operator and same_account(sender, operator))):
            raise Unauthorized(listing_id=listing_id, sender=sender)
        if listing.cancelled:
            raise AlreadyCancelled(listing_id=listing_id)
        if listing.sold:
            raise AlreadySold(listing_id=listing_id)

        updated = listing.model_copy(
            update={"cancelled": True, "updated_at": datetime.now(timezone.utc)}
        )
        self._listings[listing_id] = updated
        logger.info("listing_registry.cancelled", listing_id=listing_id, sender=sender)
        return updated

    def mark_sold(self, listing_id: int, buyer: str) -> Listing:
        """Move an ACTIVE listing to SOLD."""
        listing = self.require_active(listing_id)
        updated = listing.model_copy(
            update={"sold": True, "buyer": buyer, "updated_at": datetime.now(timezone.utc)}
        )
        self._listings[listing_id] = updated
        logger.info("listing_registry.sold", listing_id=listing_id, buyer=buyer)
        return updated

    # ── Lookups ──────────────────────────────────────────────────

    def get(self, listing_id: int) -> Listing:
        """Return the listing, whatever its status.  ``ListingNotFound`` if unknown."""
        listing = self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFound(listing_id=listing_id)
        return listing

    def require_active(self, listing_id: int) -> Listing:
        """Return the listing if it can still be settled."""
        listing = self.get(listing_id)
        if listing.cancelled:
            raise ItemAlreadyCancelled(listing_id=listing_id)
        if listing.sold:
            raise ItemAlreadySold(listing_id=listing_id)
        return listing

    def listings_for_sale(self) -> list[Listing]:
        """All ACTIVE listings in id order."""
        return [l for l in self if l.status is ListingStatus.ACTIVE]

    def listings_by_seller(self, seller: str) -> list[Listing]:
        return [l for l in self if same_account(l.seller, seller)]

    @property
    def next_id(self) -> int:
        return self._next_id

    def __iter__(self) -> Iterator[Listing]:
        return iter(sorted(self._listings.values(), key=lambda l: l.id))

    def __len__(self) -> int:
        return len(self._listings)

    # ── Runtime snapshot protocol ────────────────────────────────

    def snapshot(self) -> tuple[dict[int, Listing], int]:
        return dict(self._listings), self._next_id

    def restore(self, state: tuple[dict[int, Listing], int]) -> None:
        listings, next_id = state
        self._listings = dict(listings)
        self._next_id = next_id
