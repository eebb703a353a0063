"""
Game state aggregate and balance accrual.

``GameState`` owns everything a game call may mutate: the grid, the player
registry, the sponsorship pools, both value ledgers and the runtime
parameters. The engines (placement, swap) receive it explicitly; the game
snapshots it as a whole for transactional rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from daovsdao.config import GameConfig
from daovsdao.core import SECONDS_PER_YEAR, ZERO_ADDRESS
from daovsdao.events import Event, YieldClaimed
from daovsdao.grid import Grid
from daovsdao.ledger import OwnershipGate, ValueLedger
from daovsdao.registry import Player, PlayerRegistry
from daovsdao.sponsorship import SponsorshipLedger

GAME_TOKEN_NAME = "DaoVsDao Token"
GAME_TOKEN_SYMBOL = "DVD"
NATIVE_SYMBOL = "MATIC"


@dataclass
class GameParameters:
    """Owner-adjustable economics and the fixed cooldown/accrual settings."""
    slashing_percentage: int = 20
    slashing_tax: int = 10
    participation_fee: int = 0
    percentage_for_referrer: int = 10
    yield_percentage: int = 100
    attack_cooldown_seconds: int = 3600
    defense_cooldown_seconds: int = 3600
    spoils_policy: str = "source"

    @classmethod
    def from_config(cls, config: GameConfig) -> "GameParameters":
        econ, cool = config.economics, config.cooldowns
        return cls(
            slashing_percentage=econ.slashing_percentage.get(),
            slashing_tax=econ.slashing_tax.get(),
            participation_fee=econ.participation_fee.get(),
            percentage_for_referrer=econ.percentage_for_referrer.get(),
            yield_percentage=econ.yield_percentage.get(),
            attack_cooldown_seconds=cool.attack_cooldown_seconds.get(),
            defense_cooldown_seconds=cool.defense_cooldown_seconds.get(),
            spoils_policy=econ.spoils_policy.get(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slashing_percentage": self.slashing_percentage,
            "slashing_tax": self.slashing_tax,
            "participation_fee": str(self.participation_fee),
            "percentage_for_referrer": self.percentage_for_referrer,
            "yield_percentage": self.yield_percentage,
            "attack_cooldown_seconds": self.attack_cooldown_seconds,
            "defense_cooldown_seconds": self.defense_cooldown_seconds,
            "spoils_policy": self.spoils_policy,
        }


@dataclass
class GameState:
    gate: OwnershipGate
    params: GameParameters
    grid: Grid = field(default_factory=Grid)
    players: PlayerRegistry = field(default_factory=PlayerRegistry)
    pools: SponsorshipLedger = field(default_factory=SponsorshipLedger)
    token: ValueLedger = field(
        default_factory=lambda: ValueLedger(GAME_TOKEN_NAME, GAME_TOKEN_SYMBOL)
    )
    native: ValueLedger = field(
        default_factory=lambda: ValueLedger(NATIVE_SYMBOL, NATIVE_SYMBOL)
    )
    emitter: Optional[Any] = None

    @property
    def owner(self) -> str:
        return self.gate.owner

    @property
    def treasury(self) -> str:
        return self.gate.owner

    @property
    def emitter_address(self) -> str:
        return self.emitter.address if self.emitter is not None else ZERO_ADDRESS


# ════════════════════════════════════════════════════════════════════════════
# ACCRUAL
# ════════════════════════════════════════════════════════════════════════════


def claimable(state: GameState, identity: str, now: int) -> int:
    """Yield accrued since the last settlement. Zero for non-players."""
    if identity not in state.players:
        return 0
    player = state.players.lookup_by_identity(identity)
    elapsed = max(0, now - player.last_claim_at)
    balance = state.token.balance_of(identity)
    return balance * elapsed * state.params.yield_percentage // (100 * SECONDS_PER_YEAR)


def settle(state: GameState, identity: str, now: int, outbox: List[Event]) -> int:
    """Mint accrued yield into the balance and restart accrual at ``now``."""
    if identity not in state.players:
        return 0
    amount = claimable(state, identity, now)
    if amount:
        state.token.mint(identity, amount)
        outbox.append(YieldClaimed(user=identity, amount=amount))
    state.players.lookup_by_identity(identity).last_claim_at = now
    return amount


def worth(state: GameState, player: Player, now: int) -> int:
    """balance + claimable + sponsorships, without touching state."""
    return (
        state.token.balance_of(player.identity)
        + claimable(state, player.identity, now)
        + player.sponsorships
    )

