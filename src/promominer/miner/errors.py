"""Error kinds and exceptions for the miner engine.

Business outcomes (not enough coins, level cap, ...) are reported as
``ErrorKind`` values on a ``MutationResult``. Exceptions abort a ledger
transaction or report internal failures. Routes raise ``MinerRejectedError``
so the global error handler renders rejections.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Business outcomes an operation can be rejected with."""

    INSUFFICIENT_ENERGY = "InsufficientEnergy"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    MAX_LEVEL_REACHED = "MaxLevelReached"
    BOT_NOT_OWNED = "BotNotOwned"
    UNKNOWN_BOT = "UnknownBot"
    TIER_LOCKED = "TierLocked"
    ALREADY_CLAIMED = "AlreadyClaimed"
    INVALID_AMOUNT = "InvalidAmount"
    LEDGER_NOT_FOUND = "LedgerNotFound"
    CONCURRENCY_CONFLICT = "ConcurrencyConflict"


ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INSUFFICIENT_ENERGY: "Not enough energy. Wait for it to regenerate.",
    ErrorKind.INSUFFICIENT_BALANCE: "Not enough bonus coins.",
    ErrorKind.MAX_LEVEL_REACHED: "Maximum level reached.",
    ErrorKind.BOT_NOT_OWNED: "Buy this bot first.",
    ErrorKind.UNKNOWN_BOT: "Unknown bot.",
    ErrorKind.TIER_LOCKED: "This tier is not unlocked yet.",
    ErrorKind.ALREADY_CLAIMED: "Daily reward already claimed today.",
    ErrorKind.INVALID_AMOUNT: "Amount must be a positive integer.",
    ErrorKind.LEDGER_NOT_FOUND: "Miner data not found.",
    ErrorKind.CONCURRENCY_CONFLICT: "Too many simultaneous actions. Please retry.",
}

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INSUFFICIENT_ENERGY: 409,
    ErrorKind.INSUFFICIENT_BALANCE: 409,
    ErrorKind.MAX_LEVEL_REACHED: 409,
    ErrorKind.TIER_LOCKED: 409,
    ErrorKind.ALREADY_CLAIMED: 409,
    ErrorKind.UNKNOWN_BOT: 404,
    ErrorKind.BOT_NOT_OWNED: 404,
    ErrorKind.INVALID_AMOUNT: 422,
    ErrorKind.CONCURRENCY_CONFLICT: 503,
    ErrorKind.LEDGER_NOT_FOUND: 500,
}


class MinerError(Exception):
    """Base class for miner engine exceptions."""


class Rejected(MinerError):
    """Raised inside a ledger transaction to abort it with a business outcome."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        super().__init__(self.message)


class MinerRejectedError(MinerError):
    """Raised by the API layer when an operation came back rejected."""

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        self.status_code = ERROR_STATUS[kind]
        super().__init__(self.message)


class LedgerNotFoundError(MinerError):
    """The ledger row is missing where it must exist. Internal error."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Ledger not found for user {user_id}")


class StaleLedgerError(MinerError):
    """The ledger changed underneath a transaction (version check or insert race)."""


class ConcurrencyConflictError(MinerError):
    """Retries exhausted on a read path that cannot return a typed result."""


class EconomyConfigError(MinerError):
    """The stored economy configuration is invalid."""
