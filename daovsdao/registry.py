"""Player records and the identity ↔ coordinates index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from daovsdao.errors import ALREADY_A_PLAYER, NOT_A_PLAYER, StateError
from daovsdao.grid import Coords


@dataclass
class Player:
    """
    A registered player.

    The owned balance lives in the game-token ledger; ``sponsorships`` is the
    value held in trust for this player by its sponsorship pool. Cooldown
    timestamps are ``None`` until the first swap/slash.
    """
    identity: str
    coords: Coords
    sponsorships: int = 0
    last_attack_at: Optional[int] = None
    last_attacked_at: Optional[int] = None
    last_claim_at: int = 0


class PlayerRegistry:
    """Bidirectional lookup between identities and cells."""

    def __init__(self) -> None:
        self._players: Dict[str, Player] = {}
        self._by_coords: Dict[Coords, str] = {}

    def __contains__(self, identity: object) -> bool:
        return identity in self._players

    def __len__(self) -> int:
        return len(self._players)

    def __iter__(self) -> Iterator[Player]:
        return iter(self._players.values())

    def is_player(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self._players

    def register(self, identity: str, coords: Coords, now: int) -> Player:
        if identity in self._players:
            raise StateError(ALREADY_A_PLAYER, user=identity)
        player = Player(identity=identity, coords=coords, last_claim_at=now)
        self._players[identity] = player
        self._by_coords[coords] = identity
        return player

    def lookup_by_identity(self, identity: str) -> Player:
        player = self._players.get(identity)
        if player is None:
            raise StateError(NOT_A_PLAYER, user=identity)
        return player

    def lookup_by_coords(self, coords: Coords) -> Optional[Player]:
        identity = self._by_coords.get(coords)
        return self._players[identity] if identity is not None else None

    def move(self, player: Player, coords: Coords) -> None:
        """Point ``player`` at ``coords``. The caller keeps the grid in step."""
        if self._by_coords.get(player.coords) == player.identity:
            del self._by_coords[player.coords]
        player.coords = coords
        self._by_coords[coords] = player.identity

    def identities(self) -> List[str]:
        return list(self._players)
