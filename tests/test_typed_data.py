"""Tests for web3_infra/typed_data.py."""

from __future__ import annotations

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from core.errors import InvalidSignature
from models.vouchers import BID_VOUCHER_SCHEMA, NFT_VOUCHER_SCHEMA, BidVoucher, NFTVoucher
from web3_infra.typed_data import (
    SECP256K1_N,
    SigningDomain,
    TypedSchema,
    domain_separator,
    recover_signer,
    signable_message,
    split_signature,
    struct_hash,
    typed_digest,
)
from web3_infra.voucher_signer import sign_typed_sync

KEY = "0x" + "4c" * 32
SIGNER = Account.from_key(KEY).address
MARKET = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


@pytest.fixture
def domain() -> SigningDomain:
    return SigningDomain(name="NFT_MARKETPLACE", version="1", chain_id=31337, verifying_contract=MARKET)


@pytest.fixture
def mint_message() -> dict:
    return NFTVoucher(
        token_address="0x" + "33" * 20,
        token_id=7,
        min_price=10**18,
        royalty=10,
        uri="ipfs://bafy/7.json",
    ).typed_message()


@pytest.fixture
def bid_message() -> dict:
    return BidVoucher(
        asset="0x" + "44" * 20,
        token_address="0x" + "11" * 20,
        token_id=1,
        market_id=0,
        bid=12 * 10**17,
    ).typed_message()


class TestHashing:

    def test_matches_eth_account_for_mint_voucher(self, domain: SigningDomain, mint_message: dict) -> None:
        reference = encode_typed_data(
            domain_data=domain.as_dict(),
            message_types=NFT_VOUCHER_SCHEMA.as_types(),
            message_data=mint_message,
        )
        ours = signable_message(domain, NFT_VOUCHER_SCHEMA, mint_message)
        assert ours.header == reference.header
        assert ours.body == reference.body

    def test_matches_eth_account_for_bid_voucher(self, domain: SigningDomain, bid_message: dict) -> None:
        reference = encode_typed_data(
            domain_data=domain.as_dict(),
            message_types=BID_VOUCHER_SCHEMA.as_types(),
            message_data=bid_message,
        )
        ours = signable_message(domain, BID_VOUCHER_SCHEMA, bid_message)
        assert ours.header == reference.header
        assert ours.body == reference.body

    def test_encode_type(self) -> None:
        assert NFT_VOUCHER_SCHEMA.encode_type == (
            "NFTVoucher(address tokenAddress,uint256 tokenId,uint256 minPrice,uint16 royalty,string uri)"
        )

    def test_digest_depends_on_domain(self, domain: SigningDomain, bid_message: dict) -> None:
        other = SigningDomain(name=domain.name, version=domain.version, chain_id=1, verifying_contract=MARKET)
        assert typed_digest(domain, BID_VOUCHER_SCHEMA, bid_message) != typed_digest(
            other, BID_VOUCHER_SCHEMA, bid_message
        )

    def test_domain_separator_is_cached(self, domain: SigningDomain) -> None:
        domain_separator.cache_clear()
        first = domain_separator(domain)
        second = domain_separator(domain)
        info = domain_separator.cache_info()
        assert first == second
        assert info.misses == 1
        assert info.hits == 1

    def test_missing_field_raises(self, bid_message: dict) -> None:
        del bid_message["bid"]
        with pytest.raises(KeyError):
            struct_hash(BID_VOUCHER_SCHEMA, bid_message)

    def test_nested_types_rejected(self) -> None:
        with pytest.raises(ValueError, match="only atomic"):
            TypedSchema(primary_type="Batch", fields=(("ids", "uint256[]"),))


class TestRecovery:

    def test_recovers_signer(self, domain: SigningDomain, mint_message: dict) -> None:
        signature = sign_typed_sync(domain, NFT_VOUCHER_SCHEMA, mint_message, KEY)
        assert recover_signer(domain, NFT_VOUCHER_SCHEMA, mint_message, signature) == SIGNER

    def test_recovers_eth_account_signature(self, domain: SigningDomain, bid_message: dict) -> None:
        reference = encode_typed_data(
            domain_data=domain.as_dict(),
            message_types=BID_VOUCHER_SCHEMA.as_types(),
            message_data=bid_message,
        )
        signed = Account.sign_message(reference, KEY)
        assert recover_signer(domain, BID_VOUCHER_SCHEMA, bid_message, bytes(signed.signature)) == SIGNER

    def test_tampered_message_recovers_someone_else(self, domain: SigningDomain, bid_message: dict) -> None:
        signature = sign_typed_sync(domain, BID_VOUCHER_SCHEMA, bid_message, KEY)
        tampered = {**bid_message, "bid": bid_message["bid"] + 1}
        assert recover_signer(domain, BID_VOUCHER_SCHEMA, tampered, signature) != SIGNER

    def test_wrong_domain_recovers_someone_else(self, domain: SigningDomain, bid_message: dict) -> None:
        signature = sign_typed_sync(domain, BID_VOUCHER_SCHEMA, bid_message, KEY)
        forked = SigningDomain(name=domain.name, version=domain.version, chain_id=5, verifying_contract=MARKET)
        assert recover_signer(forked, BID_VOUCHER_SCHEMA, bid_message, signature) != SIGNER


class TestMalformedSignatures:

    @pytest.fixture
    def signature(self, domain: SigningDomain, bid_message: dict) -> bytes:
        return bytes.fromhex(sign_typed_sync(domain, BID_VOUCHER_SCHEMA, bid_message, KEY)[2:])

    def test_short_signature(self, signature: bytes) -> None:
        with pytest.raises(InvalidSignature, match="length"):
            split_signature(signature[:64])

    def test_bad_v(self, signature: bytes) -> None:
        with pytest.raises(InvalidSignature, match="'v'"):
            split_signature(signature[:64] + bytes([30]))

    def test_zero_based_v_is_normalised(self, signature: bytes) -> None:
        v, _, _ = split_signature(signature[:64] + bytes([signature[64] - 27]))
        assert v == signature[64]

    def test_high_s_rejected(self, signature: bytes) -> None:
        s = int.from_bytes(signature[32:64], "big")
        flipped_v = 55 - signature[64]
        malleable = signature[:32] + (SECP256K1_N - s).to_bytes(32, "big") + bytes([flipped_v])
        with pytest.raises(InvalidSignature, match="'s'"):
            split_signature(malleable)

    def test_non_hex_rejected(self) -> None:
        with pytest.raises(InvalidSignature, match="hex"):
            split_signature("0xzz")

    def test_recover_rejects_malformed(self, domain: SigningDomain, bid_message: dict) -> None:
        with pytest.raises(InvalidSignature):
            recover_signer(domain, BID_VOUCHER_SCHEMA, bid_message, b"\x00" * 10)
