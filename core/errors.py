"""Settlement error taxonomy.

Every error is terminal for the operation that raised it.  The runtime
restores all participant state when one escapes a call, so callers only
ever observe the error itself plus the context attached to it.
"""

from __future__ import annotations

from typing import Any


class MarketError(Exception):
    """Base class for every settlement failure.

    Parameters
    ----------
    message:
        Human readable reason.  Defaults to the class-level ``reason``.
    **context:
        Anything the caller needs to correct and resubmit
        (``listing_id``, ``required``, ``provided``, ...).
    """

    reason: str = "market error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.reason
        self.context = context
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class AlreadyInitialized(MarketError):
    reason = "contract is already initialized"


class NotInitialized(MarketError):
    reason = "contract is not initialized"


class Unauthorized(MarketError):
    reason = "only seller or owner allowed to access this function"


class NotOwnerOrNotApproved(MarketError):
    reason = "caller is not owner of the asset or market is not approved"


class InsufficientFunds(MarketError):
    """Payment below what the operation requires."""

    reason = "insufficient funds"

    def __init__(
        self,
        message: str | None = None,
        *,
        required: int | None = None,
        provided: int | None = None,
        **context: Any,
    ) -> None:
        self.required = required
        self.provided = provided
        if required is not None:
            context["required"] = required
        if provided is not None:
            context["provided"] = provided
        super().__init__(message, **context)


class ItemAlreadyCancelled(MarketError):
    reason = "Item sale already cancelled"


class ItemAlreadySold(MarketError):
    reason = "Item already sold"


class AlreadyCancelled(MarketError):
    reason = "sale already cancelled"


class AlreadySold(MarketError):
    reason = "item already sold"


class InvalidSignature(MarketError):
    reason = "invalid signature"


class InvalidConfiguration(MarketError):
    reason = "invalid configuration"


class PriceBelowMinimum(InvalidConfiguration):
    reason = "asking price below market minimum"


class ListingNotFound(MarketError):
    reason = "listing does not exist"


class ListingMismatch(MarketError):
    reason = "token does not match listing"


class UnknownContract(MarketError):
    reason = "contract is not registered with the market"


# ── Collaborator reverts ─────────────────────────────────────────────


class RegistryRevert(MarketError):
    """A collaborator (asset registry, payment token) refused an action.

    ``message`` carries the collaborator's own reason string verbatim.
    """

    reason = "collaborator reverted"


class TransferNotApproved(RegistryRevert):
    reason = "transfer caller is not owner nor approved"


class AlreadyRedeemed(RegistryRevert):
    reason = "token already minted"


class InsufficientBalance(RegistryRevert, InsufficientFunds):
    """Payment collaborator could not cover a transfer."""

    reason = "transfer amount exceeds balance"
