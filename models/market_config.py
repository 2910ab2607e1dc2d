"""MarketConfig — process-wide commission settings, fixed at initialization."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from config.settings import Settings, settings as default_settings

BPS_DENOMINATOR = 10_000


class MarketConfig(BaseModel):
    """Commission rate and treasury destination.

    Frozen: once handed to the marketplace it can only be read.
    """

    model_config = ConfigDict(frozen=True)

    commission_bps: int = Field(..., ge=0, le=BPS_DENOMINATOR, description="Platform commission in bps")
    treasury: str = Field(..., description="Receives commission proceeds")
    minimum_asking_price: int = Field(default=0, ge=0, description="Listing price floor")

    @field_validator("treasury")
    @classmethod
    def treasury_checksum(cls, v: str) -> str:
        return Web3.to_checksum_address(v)

    @property
    def max_royalty_bps(self) -> int:
        """Largest royalty a listing may carry without exceeding 100%."""
        return BPS_DENOMINATOR - self.commission_bps

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> MarketConfig:
        return cls(
            commission_bps=settings.MARKET_COMMISSION_BPS,
            treasury=settings.MARKET_TREASURY_ADDRESS,
            minimum_asking_price=settings.MARKET_MINIMUM_ASKING_PRICE,
        )
