"""
Swap / slash engine.

A swap moves the caller one step across the pyramid. Moving onto an
occupied cell slashes the occupant and the two players trade places.

Validation order (first failure wins):

    1. target bounds (realm, row, column)
    2. caller is a player
    3. caller's attack cooldown elapsed
    4. target adjacent to the caller
    5. target not in a deeper row
    6. target is not the caller's own cell
    7. occupant's defense cooldown elapsed        (occupied targets only)
    8. occupant's worth not above the caller's    (occupied targets only)

Adjacency from (r, c): (r, c-1), (r, c+1), (r-1, c-1), (r-1, c). The cells
(r+1, c) and (r+1, c+1) are adjacent but deeper, so they fail step 5.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from daovsdao.errors import NOT_A_PLAYER, BoundsError, StateError
from daovsdao.events import Event, Slashed, Swapped
from daovsdao.grid import Coords
from daovsdao.observability import GameLayer, get_logger
from daovsdao.registry import Player
from daovsdao.sponsorship import SponsorshipLedger
from daovsdao.state import GameState, settle, worth

logger = get_logger("swap", GameLayer.SWAP)

CANNOT_ATTACK_YET = "Cannot attack yet"
TOO_FAR = "Swap too far from user coords"
HIGHER_ROW = "Cannot swap with a higher row"
WITH_YOURSELF = "Cannot swap with yourself"
CANNOT_BE_ATTACKED_YET = "Cannot be attacked yet"
HIGHER_WORTH = "User has higher worth"


@dataclass(frozen=True)
class SlashSettlement:
    """Amounts moved by one slash."""
    subtracted_from_attacked_balance: int
    subtracted_from_attacked_sponsorships: int
    slashing_taxes: int
    added_to_attacker_balance: int
    added_to_attacker_sponsorships: int

    @property
    def subtracted(self) -> int:
        return self.subtracted_from_attacked_balance + self.subtracted_from_attacked_sponsorships

    @property
    def distributed(self) -> int:
        return self.slashing_taxes + self.added_to_attacker_balance + self.added_to_attacker_sponsorships


def within_reach(origin: Coords, target: Coords) -> bool:
    """True when ``target`` is one of the six neighbours of ``origin`` or ``origin`` itself."""
    if origin.realm != target.realm:
        return False
    dr = target.row - origin.row
    dc = target.column - origin.column
    if dr == 0:
        return abs(dc) <= 1
    if dr == -1:
        return dc in (-1, 0)
    if dr == 1:
        return dc in (0, 1)
    return False


def _cooling_down(last: Optional[int], cooldown: int, now: int) -> bool:
    return last is not None and now < last + cooldown


def validate_swap(state: GameState, caller: str, target: Coords, now: int) -> Optional[Player]:
    """Run every check without mutating state. Returns the occupant, if any."""
    occupant_id = state.grid.cell_at(target)
    if caller not in state.players:
        raise StateError(NOT_A_PLAYER, user=caller)
    attacker = state.players.lookup_by_identity(caller)
    params = state.params

    if _cooling_down(attacker.last_attack_at, params.attack_cooldown_seconds, now):
        raise StateError(
            CANNOT_ATTACK_YET,
            user=caller,
            available_at=attacker.last_attack_at + params.attack_cooldown_seconds,
        )
    if not within_reach(attacker.coords, target):
        raise BoundsError(TOO_FAR, origin=attacker.coords, target=target)
    if target.row > attacker.coords.row:
        raise BoundsError(HIGHER_ROW, origin=attacker.coords, target=target)
    if target == attacker.coords:
        raise BoundsError(WITH_YOURSELF, target=target)

    if occupant_id is None:
        return None

    defender = state.players.lookup_by_identity(occupant_id)
    if _cooling_down(defender.last_attacked_at, params.defense_cooldown_seconds, now):
        raise StateError(
            CANNOT_BE_ATTACKED_YET,
            user=occupant_id,
            available_at=defender.last_attacked_at + params.defense_cooldown_seconds,
        )
    attacker_worth = worth(state, attacker, now)
    defender_worth = worth(state, defender, now)
    if defender_worth > attacker_worth:
        raise StateError(
            HIGHER_WORTH,
            attacker_worth=attacker_worth,
            defender_worth=defender_worth,
        )
    return defender


def compute_spoils(
    state: GameState,
    attacker: Player,
    slashed_balance: int,
    slashed_sponsorships: int,
) -> SlashSettlement:
    """
    Split a slash between treasury and attacker.

    ``source``: each portion is taxed separately and its remainder keeps its
    flavour (balance stays balance, sponsorship stays sponsorship).

    ``worth``: the whole slash is taxed once and the remainder is split in
    proportion to the attacker's balance share of its worth.

    Sponsorship-flavoured credit falls back to the balance when the attacker
    has no pool shares to hold it in trust.
    """
    params = state.params
    has_pool = state.pools.accepts_credit(attacker)

    if params.spoils_policy == "worth":
        total = slashed_balance + slashed_sponsorships
        taxes = total * params.slashing_tax // 100
        rest = total - taxes
        balance = state.token.balance_of(attacker.identity)
        attacker_worth = balance + attacker.sponsorships
        balance_pct = balance * 100 // attacker_worth if attacker_worth else 100
        to_balance = rest * balance_pct // 100
        to_sponsorships = rest * (100 - balance_pct) // 100
    else:
        tax_b = slashed_balance * params.slashing_tax // 100
        tax_s = slashed_sponsorships * params.slashing_tax // 100
        taxes = tax_b + tax_s
        to_balance = slashed_balance - tax_b
        to_sponsorships = slashed_sponsorships - tax_s

    if not has_pool:
        to_balance += to_sponsorships
        to_sponsorships = 0

    return SlashSettlement(
        subtracted_from_attacked_balance=slashed_balance,
        subtracted_from_attacked_sponsorships=slashed_sponsorships,
        slashing_taxes=taxes,
        added_to_attacker_balance=to_balance,
        added_to_attacker_sponsorships=to_sponsorships,
    )


def slash(
    state: GameState,
    attacker: Player,
    defender: Player,
    now: int,
    outbox: List[Event],
) -> SlashSettlement:
    """Settle accrual for both sides, then move value from defender to attacker and treasury."""
    settle(state, attacker.identity, now, outbox)
    settle(state, defender.identity, now, outbox)

    pct = state.params.slashing_percentage
    slashed_balance = state.token.balance_of(defender.identity) * pct // 100
    slashed_sponsorships = SponsorshipLedger.slash(defender, pct)
    if slashed_balance:
        state.token.burn(defender.identity, slashed_balance)

    settlement = compute_spoils(state, attacker, slashed_balance, slashed_sponsorships)
    if settlement.slashing_taxes:
        state.token.mint(state.treasury, settlement.slashing_taxes)
    if settlement.added_to_attacker_balance:
        state.token.mint(attacker.identity, settlement.added_to_attacker_balance)
    if settlement.added_to_attacker_sponsorships:
        state.pools.credit(attacker, settlement.added_to_attacker_sponsorships)

    defender.last_attacked_at = now
    outbox.append(Slashed(
        attacker=attacker.identity,
        attacked=defender.identity,
        subtracted_from_attacked_balance=settlement.subtracted_from_attacked_balance,
        subtracted_from_attacked_sponsorships=settlement.subtracted_from_attacked_sponsorships,
        slashing_taxes=settlement.slashing_taxes,
        added_to_attacker_balance=settlement.added_to_attacker_balance,
        added_to_attacker_sponsorships=settlement.added_to_attacker_sponsorships,
    ))
    logger.info(
        "Slashed",
        attacker=attacker.identity,
        attacked=defender.identity,
        subtracted=settlement.subtracted,
        taxes=settlement.slashing_taxes,
    )
    return settlement


def swap(
    state: GameState,
    caller: str,
    target: Coords,
    now: int,
    outbox: List[Event],
) -> Optional[SlashSettlement]:
    """Validate and execute a swap. Returns the slash settlement, if any."""
    defender = validate_swap(state, caller, target, now)
    attacker = state.players.lookup_by_identity(caller)
    origin = attacker.coords

    settlement = None
    if defender is not None:
        settlement = slash(state, attacker, defender, now, outbox)
        state.grid.put(origin, defender.identity)
        state.grid.put(target, attacker.identity)
        state.players.move(attacker, target)
        state.players.move(defender, origin)
    else:
        state.grid.clear(origin)
        state.grid.occupy(target, attacker.identity)
        state.players.move(attacker, target)

    attacker.last_attack_at = now
    outbox.append(Swapped(
        user=caller,
        displaced=defender.identity if defender is not None else "",
        from_coords=origin.to_dict(),
        to_coords=target.to_dict(),
    ))
    return settlement
