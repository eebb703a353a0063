"""Structural and economic invariants of a game state.

Each check returns human-readable violations; ``InvariantChecker.enforce``
raises on the first batch. Used by tests, the scenario runner and the CLI.
"""

from __future__ import annotations

from typing import List

from daovsdao.errors import InvariantViolation
from daovsdao.state import GameState


class InvariantChecker:
    """Enforces grid, registry and pool invariants."""

    @staticmethod
    def check_grid_shape(state: GameState) -> List[str]:
        violations = []
        for coords, _ in state.grid.cells():
            if coords.column > coords.row:
                violations.append(f"cell {coords} outside the triangle")
        if not state.grid.check_shape():
            violations.append("a row does not have row_index + 1 cells")
        return violations

    @staticmethod
    def check_occupancy(state: GameState) -> List[str]:
        """Every player sits in exactly the cell the grid says it does."""
        violations = []
        seen = set()
        for coords, occupant in state.grid.cells():
            if occupant is None:
                continue
            if occupant in seen:
                violations.append(f"{occupant} occupies more than one cell")
            seen.add(occupant)
            if occupant not in state.players:
                violations.append(f"{occupant} at {coords} is not a registered player")
            elif state.players.lookup_by_identity(occupant).coords != coords:
                violations.append(f"{occupant} recorded away from {coords}")
        for player in state.players:
            if player.identity not in seen:
                violations.append(f"{player.identity} has no cell")
        return violations

    @staticmethod
    def check_pools(state: GameState) -> List[str]:
        violations = []
        for pool in state.pools.pools():
            if pool.total_shares < 0:
                violations.append(f"pool {pool.beneficiary} has negative shares")
            if pool.beneficiary not in state.players:
                violations.append(f"pool {pool.beneficiary} has no player")
        for player in state.players:
            if player.sponsorships < 0:
                violations.append(f"{player.identity} has negative sponsorships")
            if player.sponsorships and state.pools.shares_of(player.identity) == 0:
                violations.append(f"{player.identity} holds sponsorships without shares")
        return violations

    @staticmethod
    def check_supply(state: GameState) -> List[str]:
        held = sum(state.token.holders.values())
        if held != state.token.total_supply:
            return [f"token supply {state.token.total_supply} != sum of balances {held}"]
        return []

    @classmethod
    def check_all(cls, state: GameState) -> List[str]:
        return (
            cls.check_grid_shape(state)
            + cls.check_occupancy(state)
            + cls.check_pools(state)
            + cls.check_supply(state)
        )

    @classmethod
    def enforce(cls, state: GameState) -> None:
        violations = cls.check_all(state)
        if violations:
            raise InvariantViolation("State invariants violated", violations="; ".join(violations))
