"""Market events consumed by off-chain indexers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class MarketEvent(BaseModel):
    """Base for events; the topic is the class name."""

    model_config = ConfigDict(frozen=True)

    @property
    def topic(self) -> str:
        return type(self).__name__

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ListingCreated(MarketEvent):
    id: int
    token_id: int
    token_address: str
    asking_price: int
    royalty: int
    creator: str
    seller: str
    amount: int


class ItemSold(MarketEvent):
    id: int
    buyer: str
    token_id: int
    token_address: str
    asking_price: int
    price: int


class ItemCancelled(MarketEvent):
    id: int


class ItemRedeemed(MarketEvent):
    buyer: str
    token_id: int
    token_address: str
    price: int
