"""
Proportional-share accounting for sponsorship pools.

Each sponsored player has one pool. The pool value is the player's
``sponsorships`` total; the pool tracks the outstanding shares. Shares are
minted 1:1 into an empty pool and ``amount * shares // value`` afterwards, and
redeem for ``shares * value // total_shares``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from daovsdao.errors import BoundsError, InvariantViolation, StateError
from daovsdao.registry import Player


@dataclass
class SponsorshipPool:
    beneficiary: str
    total_shares: int = 0


class SponsorshipLedger:
    """Pools keyed by beneficiary. Values are read from and written to players."""

    def __init__(self) -> None:
        self._pools: Dict[str, SponsorshipPool] = {}

    def pool(self, beneficiary: str) -> Optional[SponsorshipPool]:
        return self._pools.get(beneficiary)

    def shares_of(self, beneficiary: str) -> int:
        pool = self._pools.get(beneficiary)
        return pool.total_shares if pool else 0

    def pools(self) -> List[SponsorshipPool]:
        return list(self._pools.values())

    def quote_shares(self, player: Player, amount: int) -> int:
        """Shares a deposit of ``amount`` would mint right now."""
        total_shares = self.shares_of(player.identity)
        if total_shares == 0:
            return amount
        if player.sponsorships == 0:
            raise StateError(
                "Sponsorship pool has no value",
                beneficiary=player.identity,
                total_shares=total_shares,
            )
        shares = amount * total_shares // player.sponsorships
        if shares == 0:
            raise BoundsError(
                "Sponsorship too small for one share",
                beneficiary=player.identity,
                amount=amount,
                pool_value=player.sponsorships,
                total_shares=total_shares,
            )
        return shares

    def deposit(self, player: Player, amount: int) -> int:
        """Add ``amount`` to the pool and return the shares minted for it."""
        if amount <= 0:
            raise BoundsError("Amount must be greater than 0")
        shares = self.quote_shares(player, amount)
        pool = self._pools.setdefault(player.identity, SponsorshipPool(player.identity))
        pool.total_shares += shares
        player.sponsorships += amount
        return shares

    def quote_redemption(self, player: Player, shares: int) -> int:
        if shares <= 0:
            raise BoundsError("Cannot reimburse 0 shares")
        total_shares = self.shares_of(player.identity)
        if shares > total_shares:
            raise InvariantViolation(
                "Insufficient sponsorship shares",
                beneficiary=player.identity,
                requested=shares,
                outstanding=total_shares,
            )
        return shares * player.sponsorships // total_shares

    def redeem(self, player: Player, shares: int) -> int:
        """Burn ``shares`` from the pool and return the value they were worth."""
        value = self.quote_redemption(player, shares)
        pool = self._pools[player.identity]
        pool.total_shares -= shares
        player.sponsorships -= value
        if pool.total_shares == 0 and player.sponsorships == 0:
            del self._pools[player.identity]
        return value

    @staticmethod
    def slash(player: Player, percentage: int) -> int:
        """Remove ``percentage`` of the pool value. Shares are untouched."""
        amount = player.sponsorships * percentage // 100
        player.sponsorships -= amount
        return amount

    def accepts_credit(self, player: Player) -> bool:
        """Only a pool with outstanding shares can hold value in trust."""
        return self.shares_of(player.identity) > 0

    def credit(self, player: Player, amount: int) -> None:
        if not self.accepts_credit(player):
            raise StateError("No sponsorship pool to credit", beneficiary=player.identity)
        player.sponsorships += amount
