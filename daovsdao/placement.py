"""First-time entry of a player into the grid."""

from __future__ import annotations

from typing import List, Optional

from daovsdao.core import ZERO_ADDRESS, is_zero_address
from daovsdao.errors import ALREADY_A_PLAYER, StateError
from daovsdao.events import Event, RowAdded, UserPlaced
from daovsdao.grid import Coords
from daovsdao.observability import GameLayer, get_logger
from daovsdao.state import GameState

logger = get_logger("placement", GameLayer.PLACEMENT)

NEED_TO_PAY_FEE = "Need to pay participation fee"


def place_user(
    state: GameState,
    caller: str,
    coords: Coords,
    referrer: Optional[str],
    value: int,
    now: int,
    outbox: List[Event],
) -> UserPlaced:
    """
    Register ``caller`` at ``coords``.

    Checks run in this order: bounds, empty cell, not yet a player, fee paid.
    ``value`` is taken from the caller's native balance in full; the
    referrer's cut applies only when the referrer is itself a player. Filling
    the last row of a realm appends a new row in the same call.
    """
    if state.grid.cell_at(coords) is not None:
        raise StateError("Cell already occupied", coords=coords)
    if caller in state.players:
        raise StateError(ALREADY_A_PLAYER, user=caller)
    if value < state.params.participation_fee:
        raise StateError(
            NEED_TO_PAY_FEE,
            paid=value,
            fee=state.params.participation_fee,
        )

    referrer_cut = 0
    if value:
        state.native.debit(caller, value)
        if (
            not is_zero_address(referrer)
            and referrer != caller
            and state.players.is_player(referrer)
        ):
            referrer_cut = value * state.params.percentage_for_referrer // 100
            if referrer_cut:
                state.native.credit(referrer, referrer_cut)
        if value - referrer_cut:
            state.native.credit(state.treasury, value - referrer_cut)

    state.players.register(caller, coords, now)
    state.grid.occupy(coords, caller)

    event = UserPlaced(
        user=caller,
        realm=coords.realm,
        row=coords.row,
        column=coords.column,
        referrer=referrer if referrer_cut else ZERO_ADDRESS,
        fee_paid=value,
        referrer_cut=referrer_cut,
        treasury_cut=value - referrer_cut,
    )
    outbox.append(event)

    if state.grid.is_last_row(coords.realm, coords.row) and state.grid.is_row_full(
        coords.realm, coords.row
    ):
        new_row = state.grid.add_row(coords.realm)
        outbox.append(RowAdded(realm=coords.realm, row=new_row, length=new_row + 1, automatic=True))
        logger.debug("Grid grew", realm=coords.realm, row=new_row)

    logger.info("User placed", user=caller, coords=str(coords), fee=value, referrer_cut=referrer_cut)
    return event
