"""VoucherSigner — off-main-thread EIP-712 signing of mint and bid vouchers.

Creators sign mint vouchers and bidders sign bid vouchers before handing
them to the market.  Signing is CPU-bound (elliptic-curve math), so we
offload it to a ``ProcessPoolExecutor`` to avoid blocking the asyncio
event loop.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Iterable, Mapping, TypeVar

import structlog
from eth_account import Account

from .typed_data import SigningDomain, TypedSchema, signable_message

logger = structlog.get_logger("web3_infra.voucher_signer")

V = TypeVar("V")


# ── Module-level signing function (must be picklable for multiprocessing) ──


def sign_typed_sync(
    domain: SigningDomain,
    schema: TypedSchema,
    message: Mapping[str, Any],
    private_key: str,
) -> str:
    """Sign *message* and return the 0x-prefixed 65-byte ``r ‖ s ‖ v`` signature."""
    signed = Account.sign_message(signable_message(domain, schema, message), private_key)
    return "0x" + bytes(signed.signature).hex()


# ── Async signer class ──────────────────────────────────────────────


class VoucherSigner:
    """Async-safe voucher signer backed by a process pool.

    Parameters
    ----------
    private_key:
        Hex-encoded private key of the creator or bidder.
    domain:
        EIP-712 domain of the market that will redeem the vouchers.
    max_workers:
        Number of processes in the signing pool.  Defaults to 2.
    """

    def __init__(
        self,
        private_key: str,
        domain: SigningDomain,
        max_workers: int = 2,
    ) -> None:
        self._private_key = private_key
        self._domain = domain
        self._max_workers = max_workers
        self._pool: ProcessPoolExecutor | None = None
        self._address: str = Account.from_key(private_key).address

    @property
    def address(self) -> str:
        """Checksummed address the market will recover from signatures."""
        return self._address

    @property
    def domain(self) -> SigningDomain:
        return self._domain

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Start the process pool.  Idempotent."""
        if self._pool is None:
            self._pool = ProcessPoolExecutor(max_workers=self._max_workers)
            logger.info(
                "voucher_signer.started",
                max_workers=self._max_workers,
                signer=self._address,
            )

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the process pool."""
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None
            logger.info("voucher_signer.shutdown")

    # ── Signing ──────────────────────────────────────────────────

    async def sign(self, voucher: V) -> V:
        """Return a copy of *voucher* carrying this signer's signature.

        *voucher* is an ``NFTVoucher`` or ``BidVoucher`` (anything with a
        ``schema_``, ``typed_message()`` and ``with_signature()``).

        Raises
        ------
        RuntimeError
            If the signer has not been started.
        """
        if self._pool is None:
            raise RuntimeError("VoucherSigner not started; call start() first")

        schema: TypedSchema = voucher.schema_  # type: ignore[attr-defined]
        message = voucher.typed_message()  # type: ignore[attr-defined]

        loop = asyncio.get_running_loop()
        signature = await loop.run_in_executor(
            self._pool,
            sign_typed_sync,
            self._domain,
            schema,
            message,
            self._private_key,
        )

        logger.debug(
            "voucher_signer.signed",
            primary_type=schema.primary_type,
            signer=self._address,
        )
        return voucher.with_signature(signature)  # type: ignore[attr-defined]

    async def sign_many(self, vouchers: Iterable[V]) -> list[V]:
        """Sign a drop of vouchers concurrently, preserving order."""
        return list(await asyncio.gather(*(self.sign(v) for v in vouchers)))

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> VoucherSigner:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)
