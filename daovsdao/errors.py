"""
DaoVsDao Error Types

Every rejected operation raises a GameError whose ``reason`` is the exact,
human-readable rejection string ("User isn't a player", "Row out of bound",
...). The game wraps each operation in a transaction, so any GameError leaves
the state exactly as it was before the call.

Categories:

    AuthorizationError   caller lacks the privilege for the call
    BoundsError          invalid coordinates, percentages, addresses, amounts
    StateError           preconditions on current state (cooldowns, worth, ...)
    InvariantViolation   guards on balances and shares
"""

from __future__ import annotations

from typing import Any, Dict


class GameError(Exception):
    """Base exception for rejected game operations."""

    category = "game"

    def __init__(self, reason: str, **context: Any):
        self.reason = reason
        self.context: Dict[str, Any] = context
        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "reason": self.reason,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class AuthorizationError(GameError):
    """Caller is not allowed to perform the operation."""

    category = "authorization"


class BoundsError(GameError):
    """An argument is outside its valid range."""

    category = "bounds"


class StateError(GameError):
    """The current state does not allow the operation."""

    category = "state"


class InvariantViolation(GameError):
    """The operation would break a balance or share invariant."""

    category = "invariant"


# Exact rejection strings shared across modules.
NOT_OWNER = "Ownable: caller is not the owner"
REALM_OUT_OF_BOUND = "Realm out of bound"
ROW_OUT_OF_BOUND = "Row out of bound"
COLUMN_OUT_OF_BOUND = "Column out of bound"
NOT_A_PLAYER = "User isn't a player"
ALREADY_A_PLAYER = "User is already a player"
INSUFFICIENT_BALANCE = "Insufficient balance"
