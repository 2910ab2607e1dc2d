"""EIP-712 typed-data hashing and signer recovery.

Stateless helpers shared by both voucher paths.  Callers pass the signing
domain and the payload schema explicitly; nothing here is bound to a
particular contract instance.

The digest is ``keccak(0x19 0x01 ‖ domainSeparator ‖ hashStruct(message))``
and matches what ``eth_account.messages.encode_typed_data`` produces for
flat (non-nested) structs.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Mapping

import structlog
from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import SignableMessage
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak
from hexbytes import HexBytes
from web3 import Web3

from core.errors import InvalidSignature

logger = structlog.get_logger("web3_infra.typed_data")

SIGNATURE_LENGTH = 65
# secp256k1 group order; signatures with s above n/2 are malleable duplicates.
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_HALF_N = SECP256K1_N // 2

_DYNAMIC_TYPES = frozenset({"string", "bytes"})


@dataclass(frozen=True)
class SigningDomain:
    """EIP-712 domain, fixed per verifying contract."""

    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def as_dict(self) -> dict[str, Any]:
        """Domain in the ``eth_account`` / ethers key layout."""
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": Web3.to_checksum_address(self.verifying_contract),
        }


@dataclass(frozen=True)
class TypedSchema:
    """A flat EIP-712 struct: primary type name plus ordered ``(name, type)`` fields."""

    primary_type: str
    fields: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        for name, type_ in self.fields:
            if type_.endswith("]") or type_[:1].isupper():
                raise ValueError(
                    f"{self.primary_type}.{name}: only atomic and dynamic types are supported, got {type_}"
                )

    @property
    def encode_type(self) -> str:
        members = ",".join(f"{type_} {name}" for name, type_ in self.fields)
        return f"{self.primary_type}({members})"

    @property
    def type_hash(self) -> bytes:
        return keccak(text=self.encode_type)

    def as_types(self) -> dict[str, list[dict[str, str]]]:
        """Schema in the ``eth_account`` ``message_types`` layout."""
        return {
            self.primary_type: [{"name": name, "type": type_} for name, type_ in self.fields]
        }


EIP712_DOMAIN_SCHEMA = TypedSchema(
    primary_type="EIP712Domain",
    fields=(
        ("name", "string"),
        ("version", "string"),
        ("chainId", "uint256"),
        ("verifyingContract", "address"),
    ),
)


# ── Hashing ──────────────────────────────────────────────────────────


def _encode_value(type_: str, value: Any) -> bytes:
    if type_ == "string":
        return keccak(text=value)
    if type_ == "bytes":
        return keccak(HexBytes(value))
    return abi_encode([type_], [value])


def struct_hash(schema: TypedSchema, message: Mapping[str, Any]) -> bytes:
    """``keccak(typeHash ‖ encodeData(message))``.

    Raises ``KeyError`` if *message* lacks a schema field.
    """
    encoded = b"".join(_encode_value(type_, message[name]) for name, type_ in schema.fields)
    return keccak(schema.type_hash + encoded)


@functools.lru_cache(maxsize=64)
def domain_separator(domain: SigningDomain) -> bytes:
    """Domain separator for *domain*; computed once per distinct domain."""
    return struct_hash(EIP712_DOMAIN_SCHEMA, domain.as_dict())


def signable_message(
    domain: SigningDomain,
    schema: TypedSchema,
    message: Mapping[str, Any],
) -> SignableMessage:
    """EIP-191 version ``0x01`` envelope ready for ``Account.sign_message``."""
    return SignableMessage(
        version=b"\x01",
        header=domain_separator(domain),
        body=struct_hash(schema, message),
    )


def typed_digest(
    domain: SigningDomain,
    schema: TypedSchema,
    message: Mapping[str, Any],
) -> bytes:
    """The 32-byte digest that gets signed."""
    return keccak(b"\x19\x01" + domain_separator(domain) + struct_hash(schema, message))


# ── Recovery ─────────────────────────────────────────────────────────


def split_signature(signature: bytes | str) -> tuple[int, int, int]:
    """Split a 65-byte ``r ‖ s ‖ v`` signature into ``(v, r, s)``.

    ``v`` is normalised to 27/28.  Anything malformed raises
    ``InvalidSignature`` instead of yielding a garbage signer.
    """
    try:
        raw = HexBytes(signature)
    except (TypeError, ValueError) as exc:
        raise InvalidSignature("signature is not valid hex") from exc

    if len(raw) != SIGNATURE_LENGTH:
        raise InvalidSignature("invalid signature length", length=len(raw))

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    if v in (0, 1):
        v += 27
    if v not in (27, 28):
        raise InvalidSignature("invalid signature 'v' value", v=v)
    if s > _HALF_N:
        raise InvalidSignature("invalid signature 's' value")
    return v, r, s


def recover_signer(
    domain: SigningDomain,
    schema: TypedSchema,
    message: Mapping[str, Any],
    signature: bytes | str,
) -> str:
    """Recover the checksummed address that signed *message* under *domain*."""
    vrs = split_signature(signature)
    signable = signable_message(domain, schema, message)
    try:
        signer = Account.recover_message(signable, vrs=vrs)
    except (BadSignature, KeyValidationError, ValueError) as exc:
        raise InvalidSignature("signature recovery failed") from exc

    logger.debug(
        "typed_data.recovered",
        primary_type=schema.primary_type,
        signer=signer,
    )
    return signer
