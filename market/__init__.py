"""NFT market settlement — market package."""

from .fees import FeeSplit, LazyMintQuote, LazyMintSplit, lazy_mint_price, split, split_lazy_mint
from .listing_registry import BatchCancelResult, ListingRegistry
from .marketplace import Marketplace

__all__ = [
    "BatchCancelResult",
    "FeeSplit",
    "LazyMintQuote",
    "LazyMintSplit",
    "ListingRegistry",
    "Marketplace",
    "lazy_mint_price",
    "split",
    "split_lazy_mint",
]
