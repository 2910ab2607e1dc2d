"""Pydantic BaseSettings — all amounts are integers in the smallest currency unit."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────
    APP_ENV: Literal["dev", "test", "prod"] = "dev"
    APP_NAME: str = "nft-market-settlement"
    LOG_LEVEL: str = "INFO"

    # ── Chain / signing domain ──────────────────────────────────
    CHAIN_ID: int = Field(default=1, ge=1)
    MARKET_ADDRESS: str = "0x000000000000000000000000000000000000dEaD"
    SIGNING_DOMAIN_NAME: str = "NFT_MARKETPLACE"
    SIGNING_DOMAIN_VERSION: str = "1"

    # ── Commission (basis points, 1/10000) ──────────────────────
    MARKET_COMMISSION_BPS: int = Field(default=250, ge=0, le=10_000)
    MARKET_TREASURY_ADDRESS: str = "0x7Adb261Bea663ee06E4ff0a657E65aE91aC7167f"
    MARKET_MINIMUM_ASKING_PRICE: int = Field(default=0, ge=0)

    # ── Voucher signing ─────────────────────────────────────────
    SIGNER_MAX_WORKERS: int = Field(default=2, ge=1)
    # Never commit real values
    VOUCHER_PRIVATE_KEY: str = ""


settings = Settings()
