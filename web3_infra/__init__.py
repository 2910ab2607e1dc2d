"""NFT market settlement — web3_infra package.

- typed_data: EIP-712 hashing and signer recovery (used by both voucher paths)
- voucher_signer: off-loop signing for creators and bidders
- registries: collaborator protocols plus in-memory implementations
"""

from .registries import (
    AssetRegistry,
    InMemoryERC20,
    InMemoryERC721,
    InMemoryERC1155,
    InMemoryNativeLedger,
    NativeCurrency,
    PaymentToken,
)
from .typed_data import SigningDomain, TypedSchema, domain_separator, recover_signer, typed_digest
from .voucher_signer import VoucherSigner, sign_typed_sync

__all__ = [
    "AssetRegistry",
    "InMemoryERC20",
    "InMemoryERC721",
    "InMemoryERC1155",
    "InMemoryNativeLedger",
    "NativeCurrency",
    "PaymentToken",
    "SigningDomain",
    "TypedSchema",
    "VoucherSigner",
    "domain_separator",
    "recover_signer",
    "sign_typed_sync",
    "typed_digest",
]
