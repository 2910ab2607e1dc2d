"""Fee splitting — how a payment divides between seller, creator and treasury.

Two fee models coexist:

- **Deductive** (direct sale, bid settlement): commission and royalty are
  carved out of the gross price; the seller keeps the rest, including any
  rounding remainder.
- **Additive** (lazy-mint redemption): commission is charged on top of the
  creator's minimum price; the creator receives ``min_price`` exactly.

All arithmetic is integer, truncating toward zero.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import InsufficientFunds
from models.market_config import BPS_DENOMINATOR


@dataclass(frozen=True)
class FeeSplit:
    """Deductive split of a gross sale price."""

    seller_amount: int
    royalty_amount: int
    commission_amount: int

    @property
    def total(self) -> int:
        return self.seller_amount + self.royalty_amount + self.commission_amount


@dataclass(frozen=True)
class LazyMintQuote:
    """What a buyer must attach to redeem a mint voucher."""

    min_price: int
    commission: int

    @property
    def required(self) -> int:
        return self.min_price + self.commission


@dataclass(frozen=True)
class LazyMintSplit:
    """Where a lazy-mint payment goes."""

    creator_amount: int
    treasury_amount: int


def _check_bps(name: str, bps: int) -> None:
    if not 0 <= bps <= BPS_DENOMINATOR:
        raise ValueError(f"{name} must be within [0, {BPS_DENOMINATOR}], got {bps}")


def bps_of(amount: int, bps: int) -> int:
    """``floor(amount * bps / 10000)`` for non-negative inputs."""
    return amount * bps // BPS_DENOMINATOR


def same_account(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def split(
    gross: int,
    royalty_bps: int,
    commission_bps: int,
    creator: str,
    seller: str,
) -> FeeSplit:
    """Split *gross* into seller proceeds, creator royalty and commission.

    No royalty is paid when the creator is the seller (primary sale).
    The three parts always sum to *gross*.

    Raises ``ValueError`` for negative amounts or out-of-range rates.
    ``royalty_bps + commission_bps > 10000`` is rejected here as well,
    although the market refuses such listings long before.
    """
    if gross < 0:
        raise ValueError(f"gross must be non-negative, got {gross}")
    _check_bps("royalty_bps", royalty_bps)
    _check_bps("commission_bps", commission_bps)
    if royalty_bps + commission_bps > BPS_DENOMINATOR:
        raise ValueError("royalty_bps + commission_bps exceeds 100%")

    commission = bps_of(gross, commission_bps)
    royalty = 0 if same_account(creator, seller) else bps_of(gross, royalty_bps)
    return FeeSplit(
        seller_amount=gross - commission - royalty,
        royalty_amount=royalty,
        commission_amount=commission,
    )


def lazy_mint_price(min_price: int, commission_bps: int) -> LazyMintQuote:
    """Required payment for a mint voucher: ``min_price`` plus commission on it."""
    if min_price < 0:
        raise ValueError(f"min_price must be non-negative, got {min_price}")
    _check_bps("commission_bps", commission_bps)
    return LazyMintQuote(min_price=min_price, commission=bps_of(min_price, commission_bps))


def split_lazy_mint(payment: int, min_price: int, commission_bps: int) -> LazyMintSplit:
    """Creator gets ``min_price``; the treasury gets everything above it.

    Raises ``InsufficientFunds`` when *payment* does not cover the quote.
    """
    quote = lazy_mint_price(min_price, commission_bps)
    if payment < quote.required:
        raise InsufficientFunds(
            "Insufficient funds to redeem",
            required=quote.required,
            provided=payment,
        )
    return LazyMintSplit(creator_amount=min_price, treasury_amount=payment - min_price)
