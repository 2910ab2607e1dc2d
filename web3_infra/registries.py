"""Collaborator capabilities consumed by the settlement core.

The marketplace never owns assets or balances itself; it asks an asset
registry to move tokens and a payment primitive to move money.  This
module defines those capabilities as async protocols and ships
in-memory implementations used by tests, the CLI and local simulation.

In-memory collaborators:
- count every call per method in ``call_counts``;
- implement ``snapshot()`` / ``restore()`` so the runtime can roll them
  back together with the market;
- fail with OpenZeppelin-style reason strings, surfaced unchanged.
"""

from __future__ import annotations

from collections import Counter
from typing import Protocol, runtime_checkable

import structlog
from web3 import Web3

from core.errors import AlreadyRedeemed, InsufficientBalance, RegistryRevert, TransferNotApproved

logger = structlog.get_logger("web3_infra.registries")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _addr(value: str) -> str:
    return Web3.to_checksum_address(value)


# ── Protocols ────────────────────────────────────────────────────────


@runtime_checkable
class AssetRegistry(Protocol):
    """ERC721 / ERC1155-like collection."""

    address: str

    async def owner_of(self, token_id: int) -> str: ...

    async def balance_of(self, owner: str, token_id: int) -> int: ...

    async def exists(self, token_id: int) -> bool: ...

    async def is_approved_for_all(self, owner: str, operator: str) -> bool: ...

    async def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None: ...

    async def safe_transfer_from(
        self, operator: str, from_: str, to: str, token_id: int, amount: int = 1
    ) -> None: ...

    async def mint(self, operator: str, to: str, token_id: int, uri: str) -> None: ...


@runtime_checkable
class NativeCurrency(Protocol):
    """Chain currency moved by value attached to a call."""

    async def balance_of(self, owner: str) -> int: ...

    async def transfer(self, from_: str, to: str, amount: int) -> None: ...


@runtime_checkable
class PaymentToken(Protocol):
    """ERC20-style token settled by pull (``transfer_from``)."""

    address: str

    async def balance_of(self, owner: str) -> int: ...

    async def allowance(self, owner: str, spender: str) -> int: ...

    async def approve(self, owner: str, spender: str, amount: int) -> None: ...

    async def transfer(self, from_: str, to: str, amount: int) -> None: ...

    async def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None: ...


# ── In-memory asset registries ───────────────────────────────────────


class _InMemoryCollection:
    """Shared operator-approval and minting bookkeeping."""

    _prefix = "ERC721"

    def __init__(
        self,
        address: str,
        name: str = "",
        trusted_operator: str | None = None,
    ) -> None:
        self.address = _addr(address)
        self.name = name
        # A trusted operator (the market) is implicitly approved for every
        # owner and is the only account allowed to mint.
        self._trusted = _addr(trusted_operator) if trusted_operator else None
        self._approvals: dict[str, set[str]] = {}
        self._uris: dict[int, str] = {}
        self.call_counts: Counter[str] = Counter()

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        self.call_counts["is_approved_for_all"] += 1
        return self._approved(_addr(owner), _addr(operator))

    async def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        self.call_counts["set_approval_for_all"] += 1
        operators = self._approvals.setdefault(_addr(owner), set())
        if approved:
            operators.add(_addr(operator))
        else:
            operators.discard(_addr(operator))

    def token_uri(self, token_id: int) -> str:
        return self._uris.get(token_id, "")

    def _approved(self, owner: str, operator: str) -> bool:
        if self._trusted is not None and operator == self._trusted:
            return True
        return operator in self._approvals.get(owner, set())

    def _check_minter(self, operator: str) -> None:
        if self._trusted is not None and _addr(operator) != self._trusted:
            raise RegistryRevert(f"{self._prefix}: caller is not the minter", operator=operator)


class InMemoryERC721(_InMemoryCollection):
    """Unique-asset collection."""

    _prefix = "ERC721"

    def __init__(self, address: str, name: str = "", trusted_operator: str | None = None) -> None:
        super().__init__(address, name, trusted_operator)
        self._owners: dict[int, str] = {}

    async def owner_of(self, token_id: int) -> str:
        self.call_counts["owner_of"] += 1
        owner = self._owners.get(token_id)
        if owner is None:
            raise RegistryRevert("ERC721: owner query for nonexistent token", token_id=token_id)
        return owner

    async def balance_of(self, owner: str, token_id: int) -> int:
        self.call_counts["balance_of"] += 1
        return 1 if self._owners.get(token_id) == _addr(owner) else 0

    async def exists(self, token_id: int) -> bool:
        self.call_counts["exists"] += 1
        return token_id in self._owners

    async def safe_transfer_from(
        self, operator: str, from_: str, to: str, token_id: int, amount: int = 1
    ) -> None:
        self.call_counts["safe_transfer_from"] += 1
        operator, from_, to = _addr(operator), _addr(from_), _addr(to)
        if amount != 1:
            raise RegistryRevert("ERC721: amount must be 1", amount=amount)
        owner = self._owners.get(token_id)
        if owner is None:
            raise RegistryRevert("ERC721: operator query for nonexistent token", token_id=token_id)
        if operator != owner and not self._approved(owner, operator):
            raise TransferNotApproved("ERC721: transfer caller is not owner nor approved", token_id=token_id)
        if owner != from_:
            raise RegistryRevert("ERC721: transfer from incorrect owner", token_id=token_id)
        if to == ZERO_ADDRESS:
            raise RegistryRevert("ERC721: transfer to the zero address")
        self._owners[token_id] = to

    async def mint(self, operator: str, to: str, token_id: int, uri: str) -> None:
        self.call_counts["mint"] += 1
        self._check_minter(operator)
        if token_id in self._owners:
            raise AlreadyRedeemed("ERC721: token already minted", token_id=token_id)
        if _addr(to) == ZERO_ADDRESS:
            raise RegistryRevert("ERC721: mint to the zero address")
        self._owners[token_id] = _addr(to)
        self._uris[token_id] = uri
        logger.debug("erc721.minted", collection=self.address, token_id=token_id, to=to)

    def snapshot(self) -> tuple:
        return (
            dict(self._owners),
            dict(self._uris),
            {owner: set(ops) for owner, ops in self._approvals.items()},
        )

    def restore(self, state: tuple) -> None:
        owners, uris, approvals = state
        self._owners = dict(owners)
        self._uris = dict(uris)
        self._approvals = {owner: set(ops) for owner, ops in approvals.items()}


class InMemoryERC1155(_InMemoryCollection):
    """Semi-fungible collection; each id may be held in quantity."""

    _prefix = "ERC1155"

    def __init__(self, address: str, name: str = "", trusted_operator: str | None = None) -> None:
        super().__init__(address, name, trusted_operator)
        self._balances: dict[tuple[int, str], int] = {}

    async def owner_of(self, token_id: int) -> str:
        # ERC1155 has no single owner; report the largest holder for display.
        self.call_counts["owner_of"] += 1
        holders = [(qty, owner) for (tid, owner), qty in self._balances.items() if tid == token_id and qty > 0]
        if not holders:
            raise RegistryRevert("ERC1155: owner query for nonexistent token", token_id=token_id)
        return max(holders)[1]

    async def balance_of(self, owner: str, token_id: int) -> int:
        self.call_counts["balance_of"] += 1
        return self._balances.get((token_id, _addr(owner)), 0)

    async def exists(self, token_id: int) -> bool:
        self.call_counts["exists"] += 1
        return token_id in self._uris

    async def safe_transfer_from(
        self, operator: str, from_: str, to: str, token_id: int, amount: int = 1
    ) -> None:
        self.call_counts["safe_transfer_from"] += 1
        operator, from_, to = _addr(operator), _addr(from_), _addr(to)
        if operator != from_ and not self._approved(from_, operator):
            raise TransferNotApproved("ERC1155: caller is not owner nor approved", token_id=token_id)
        if to == ZERO_ADDRESS:
            raise RegistryRevert("ERC1155: transfer to the zero address")
        held = self._balances.get((token_id, from_), 0)
        if held < amount:
            raise RegistryRevert(
                "ERC1155: insufficient balance for transfer", token_id=token_id, held=held, amount=amount
            )
        self._balances[(token_id, from_)] = held - amount
        self._balances[(token_id, to)] = self._balances.get((token_id, to), 0) + amount

    async def mint(self, operator: str, to: str, token_id: int, uri: str, amount: int = 1) -> None:
        self.call_counts["mint"] += 1
        self._check_minter(operator)
        if token_id in self._uris:
            raise AlreadyRedeemed("ERC1155: token already minted", token_id=token_id)
        key = (token_id, _addr(to))
        self._balances[key] = self._balances.get(key, 0) + amount
        self._uris[token_id] = uri

    def snapshot(self) -> tuple:
        return (
            dict(self._balances),
            dict(self._uris),
            {owner: set(ops) for owner, ops in self._approvals.items()},
        )

    def restore(self, state: tuple) -> None:
        balances, uris, approvals = state
        self._balances = dict(balances)
        self._uris = dict(uris)
        self._approvals = {owner: set(ops) for owner, ops in approvals.items()}


# ── In-memory payment primitives ─────────────────────────────────────


class InMemoryNativeLedger:
    """Native currency balances."""

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self.call_counts: Counter[str] = Counter()

    def fund(self, owner: str, amount: int) -> None:
        """Credit *amount* out of thin air (test / simulation setup)."""
        if amount < 0:
            raise ValueError("amount cannot be negative")
        key = _addr(owner)
        self._balances[key] = self._balances.get(key, 0) + amount

    async def balance_of(self, owner: str) -> int:
        self.call_counts["balance_of"] += 1
        return self._balances.get(_addr(owner), 0)

    async def transfer(self, from_: str, to: str, amount: int) -> None:
        self.call_counts["transfer"] += 1
        from_, to = _addr(from_), _addr(to)
        if amount < 0:
            raise RegistryRevert("Address: negative amount", amount=amount)
        held = self._balances.get(from_, 0)
        if held < amount:
            raise InsufficientBalance(
                "Address: insufficient balance", required=amount, provided=held, account=from_
            )
        self._balances[from_] = held - amount
        self._balances[to] = self._balances.get(to, 0) + amount

    def snapshot(self) -> dict[str, int]:
        return dict(self._balances)

    def restore(self, state: dict[str, int]) -> None:
        self._balances = dict(state)


class InMemoryERC20:
    """Wrapped-currency style ERC20 token."""

    def __init__(self, address: str, symbol: str = "WETH") -> None:
        self.address = _addr(address)
        self.symbol = symbol
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.call_counts: Counter[str] = Counter()

    def deposit(self, owner: str, amount: int) -> None:
        """Mint *amount* to *owner* (test / simulation setup)."""
        if amount < 0:
            raise ValueError("amount cannot be negative")
        key = _addr(owner)
        self._balances[key] = self._balances.get(key, 0) + amount

    async def balance_of(self, owner: str) -> int:
        self.call_counts["balance_of"] += 1
        return self._balances.get(_addr(owner), 0)

    async def allowance(self, owner: str, spender: str) -> int:
        self.call_counts["allowance"] += 1
        return self._allowances.get((_addr(owner), _addr(spender)), 0)

    async def approve(self, owner: str, spender: str, amount: int) -> None:
        self.call_counts["approve"] += 1
        if amount < 0:
            raise RegistryRevert("ERC20: negative allowance", amount=amount)
        self._allowances[(_addr(owner), _addr(spender))] = amount

    async def transfer(self, from_: str, to: str, amount: int) -> None:
        self.call_counts["transfer"] += 1
        self._move(_addr(from_), _addr(to), amount)

    async def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        self.call_counts["transfer_from"] += 1
        spender, owner, to = _addr(spender), _addr(owner), _addr(to)
        allowed = self._allowances.get((owner, spender), 0)
        if allowed < amount:
            raise TransferNotApproved(
                "ERC20: insufficient allowance", owner=owner, spender=spender, allowance=allowed, amount=amount
            )
        self._move(owner, to, amount)
        self._allowances[(owner, spender)] = allowed - amount

    def _move(self, from_: str, to: str, amount: int) -> None:
        if amount < 0:
            raise RegistryRevert("ERC20: negative amount", amount=amount)
        if to == ZERO_ADDRESS:
            raise RegistryRevert("ERC20: transfer to the zero address")
        held = self._balances.get(from_, 0)
        if held < amount:
            raise InsufficientBalance(
                "ERC20: transfer amount exceeds balance", required=amount, provided=held, account=from_
            )
        self._balances[from_] = held - amount
        self._balances[to] = self._balances.get(to, 0) + amount

    def snapshot(self) -> tuple:
        return dict(self._balances), dict(self._allowances)

    def restore(self, state: tuple) -> None:
        balances, allowances = state
        self._balances = dict(balances)
        self._allowances = dict(allowances)
