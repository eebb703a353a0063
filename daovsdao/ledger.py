"""Fungible value ledgers and the ownership gate.

``ValueLedger`` is the balance store for both the game token and the native
coin used to pay participation fees. ``OwnershipGate`` is the single
administrator check shared by the game and the certificate registry.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from daovsdao.core import ZERO_ADDRESS, format_ether, is_zero_address
from daovsdao.errors import (
    INSUFFICIENT_BALANCE,
    NOT_OWNER,
    AuthorizationError,
    BoundsError,
    InvariantViolation,
)

# (sender, recipient, amount); ZERO_ADDRESS on one side for mint/burn
Movement = Tuple[str, str, int]


class ValueLedger:
    """
    Integer balance ledger keyed by identity.

    Every movement is appended to ``journal`` so callers can turn it into
    transfer events. Amounts are non-negative ints in the smallest unit.
    """

    def __init__(self, name: str, symbol: str, decimals: int = 18):
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self.journal: List[Movement] = []

    def balance_of(self, identity: str) -> int:
        return self._balances.get(identity, 0)

    @property
    def total_supply(self) -> int:
        return self._total_supply

    @property
    def holders(self) -> Dict[str, int]:
        return {k: v for k, v in self._balances.items() if v}

    def mint(self, to: str, amount: int) -> None:
        self._check_amount(amount)
        if is_zero_address(to):
            raise BoundsError("Mint to the zero address", ledger=self.symbol)
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount
        self.journal.append((ZERO_ADDRESS, to, amount))

    def burn(self, holder: str, amount: int) -> None:
        self._check_amount(amount)
        self._require_funds(holder, amount)
        self._balances[holder] -= amount
        self._total_supply -= amount
        self.journal.append((holder, ZERO_ADDRESS, amount))

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._check_amount(amount)
        if is_zero_address(recipient):
            raise BoundsError("Transfer to the zero address", ledger=self.symbol)
        self._require_funds(sender, amount)
        self._balances[sender] -= amount
        self._balances[recipient] = self.balance_of(recipient) + amount
        self.journal.append((sender, recipient, amount))

    # Core-facing aliases
    def debit(self, identity: str, amount: int) -> None:
        self.burn(identity, amount)

    def credit(self, identity: str, amount: int) -> None:
        self.mint(identity, amount)

    def drain_journal(self) -> List[Movement]:
        moved, self.journal = self.journal, []
        return moved

    def _require_funds(self, identity: str, amount: int) -> None:
        if self.balance_of(identity) < amount:
            raise InvariantViolation(
                INSUFFICIENT_BALANCE,
                ledger=self.symbol,
                holder=identity,
                needed=format_ether(amount),
                available=format_ether(self.balance_of(identity)),
            )

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise BoundsError("Amount must be a non-negative integer", amount=amount)

    def __repr__(self) -> str:
        return f"ValueLedger({self.symbol}, supply={format_ether(self._total_supply)})"


class OwnershipGate:
    """Single-administrator authorization predicate."""

    def __init__(self, owner: str):
        if is_zero_address(owner):
            raise BoundsError("Invalid owner")
        self.owner = owner

    def is_owner(self, caller: Optional[str]) -> bool:
        return caller is not None and caller == self.owner

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise AuthorizationError(NOT_OWNER, caller=caller)

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand the gate to ``new_owner``. Returns the previous owner."""
        self.require_owner(caller)
        if is_zero_address(new_owner):
            raise BoundsError("Invalid owner")
        previous, self.owner = self.owner, new_owner
        return previous
