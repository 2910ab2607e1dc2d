"""Listing — one asset offered for sale on the market."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from web3 import Web3

from .market_config import BPS_DENOMINATOR


class TokenType(str, Enum):
    """Asset standard of the listed collection."""

    ERC1155 = "ERC1155"  # fungible batch
    ERC721 = "ERC721"  # unique


class ListingStatus(str, Enum):
    """Lifecycle of a listing.  ACTIVE moves to exactly one terminal state."""

    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


class ItemDetails(BaseModel):
    """What the lister is putting on sale."""

    model_config = ConfigDict(frozen=True)

    token_type: TokenType = TokenType.ERC721
    token_address: str
    token_id: int = Field(..., ge=0)
    royalty_bps: int = Field(default=0, ge=0, le=BPS_DENOMINATOR)
    creator: str

    @field_validator("token_address", "creator")
    @classmethod
    def checksum(cls, v: str) -> str:
        return Web3.to_checksum_address(v)


class Listing(BaseModel):
    """Registry row.  Never deleted; sold and cancelled rows stay queryable."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0)
    token_type: TokenType
    token_address: str
    token_id: int = Field(..., ge=0)
    amount: int = Field(..., ge=1)
    asking_price: int = Field(..., ge=0, description="Smallest currency unit")
    seller: str
    creator: str
    royalty_bps: int = Field(default=0, ge=0, le=BPS_DENOMINATOR)

    cancelled: bool = False
    sold: bool = False
    buyer: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("token_address", "seller", "creator")
    @classmethod
    def checksum(cls, v: str) -> str:
        return Web3.to_checksum_address(v)

    @model_validator(mode="after")
    def unique_assets_are_single(self) -> Listing:
        if self.token_type is TokenType.ERC721 and self.amount != 1:
            raise ValueError("ERC721 listings must have amount == 1")
        if self.cancelled and self.sold:
            raise ValueError("listing cannot be both sold and cancelled")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> ListingStatus:
        if self.sold:
            return ListingStatus.SOLD
        if self.cancelled:
            return ListingStatus.CANCELLED
        return ListingStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is ListingStatus.ACTIVE
