"""Signed vouchers — off-chain authorizations redeemed by the marketplace.

Neither voucher is stored; validity is re-derived from the signature on
every redemption.  Field aliases are the camelCase names the signer puts
into the EIP-712 payload.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from web3 import Web3

from web3_infra.typed_data import TypedSchema

NFT_VOUCHER_SCHEMA = TypedSchema(
    primary_type="NFTVoucher",
    fields=(
        ("tokenAddress", "address"),
        ("tokenId", "uint256"),
        ("minPrice", "uint256"),
        ("royalty", "uint16"),
        ("uri", "string"),
    ),
)

BID_VOUCHER_SCHEMA = TypedSchema(
    primary_type="BidVoucher",
    fields=(
        ("asset", "address"),
        ("tokenAddress", "address"),
        ("tokenId", "uint256"),
        ("marketId", "uint256"),
        ("bid", "uint256"),
    ),
)

V = TypeVar("V", bound="_Voucher")


class _Voucher(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    schema_: ClassVar[TypedSchema]

    signature: Optional[str] = Field(default=None, description="0x-prefixed 65-byte signature")

    def typed_message(self) -> dict[str, Any]:
        """Payload that is signed: every schema field, keyed by its EIP-712 name."""
        data = self.model_dump(by_alias=True, exclude={"signature"})
        return {name: data[name] for name, _ in self.schema_.fields}

    def with_signature(self: V, signature: str) -> V:
        return self.model_copy(update={"signature": signature})


class NFTVoucher(_Voucher):
    """Creator-signed authorization to mint ``token_id`` on first sale.

    ``royalty`` is carried for the collection's own records; redemption
    does not split it out of the payment.
    """

    schema_: ClassVar[TypedSchema] = NFT_VOUCHER_SCHEMA

    token_address: str
    token_id: int = Field(..., ge=0)
    min_price: int = Field(default=0, ge=0)
    royalty: int = Field(default=0, ge=0, le=100, description="Percentage, informational")
    uri: str = Field(..., min_length=1)

    @field_validator("token_address")
    @classmethod
    def checksum(cls, v: str) -> str:
        return Web3.to_checksum_address(v)


class BidVoucher(_Voucher):
    """Bidder-signed offer to pay ``bid`` of ``asset`` for listing ``market_id``."""

    schema_: ClassVar[TypedSchema] = BID_VOUCHER_SCHEMA

    asset: str
    token_address: str
    token_id: int = Field(..., ge=0)
    market_id: int = Field(..., ge=0)
    bid: int = Field(..., gt=0)

    @field_validator("asset", "token_address")
    @classmethod
    def checksum(cls, v: str) -> str:
        return Web3.to_checksum_address(v)
