"""NFT market settlement — models package."""

from .events import ItemCancelled, ItemRedeemed, ItemSold, ListingCreated, MarketEvent
from .listing import ItemDetails, Listing, ListingStatus, TokenType
from .market_config import BPS_DENOMINATOR, MarketConfig
from .vouchers import BID_VOUCHER_SCHEMA, NFT_VOUCHER_SCHEMA, BidVoucher, NFTVoucher

__all__ = [
    "BID_VOUCHER_SCHEMA",
    "BPS_DENOMINATOR",
    "BidVoucher",
    "ItemCancelled",
    "ItemDetails",
    "ItemRedeemed",
    "ItemSold",
    "Listing",
    "ListingCreated",
    "ListingStatus",
    "MarketConfig",
    "MarketEvent",
    "NFTVoucher",
    "NFT_VOUCHER_SCHEMA",
    "TokenType",
]
