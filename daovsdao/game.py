"""
DaoVsDao Game

The public face of the engine. Every mutating call takes the caller identity
explicitly, reads the clock once, runs inside a transaction and returns a
Receipt with the events it produced.

    ┌──────────────────────────────────────────────────────────────────────┐
    │                              DaoVsDao                                │
    │                                                                      │
    │   owner setters ──► OwnershipGate ──► AuditLogger                    │
    │                                                                      │
    │   place_user ─────► placement ─┐                                     │
    │   swap ───────────► swap ──────┼──► GameState (grid, players,       │
    │   sponsor / redeem ► pools ────┘     pools, DVD + native ledgers)    │
    │                                                                      │
    │   commit ─────────► EventStore ──► EventBus ──► subscribers          │
    └──────────────────────────────────────────────────────────────────────┘

A failed call restores the pre-call state and publishes nothing.
"""

from __future__ import annotations

import copy
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from daovsdao.certificate import CertificateIssuer, SharesRedeemer
from daovsdao.clock import Clock, SystemClock
from daovsdao.config import GameConfig, get_config
from daovsdao.core import SCHEMA_DIR, ZERO_ADDRESS, canonical_json_bytes, is_zero_address, sha256_bytes
from daovsdao.errors import (
    NOT_A_PLAYER,
    AuthorizationError,
    BoundsError,
    GameError,
    StateError,
)
from daovsdao.events import (
    Event,
    EventBus,
    EventStore,
    OwnershipTransferred,
    ParticipationFeeUpdated,
    PercentageForReferrerUpdated,
    RealmAdded,
    Receipt,
    RowAdded,
    SlashingPercentageUpdated,
    SlashingTaxUpdated,
    Sponsored,
    SponsorshipCertificateEmitterUpdated,
    SponsorshipRedeemed,
    Transfer,
)
from daovsdao.grid import Coords
from daovsdao.ledger import OwnershipGate
from daovsdao.observability import (
    AuditLogger,
    GameLayer,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
    correlation_id_var,
)
from daovsdao.placement import place_user as _place_user
from daovsdao.state import GameParameters, GameState, claimable, settle
from daovsdao.swap import swap as _swap

logger = get_logger("game", GameLayer.GAME)

DEFAULT_GAME_ADDRESS = "0x000000000000000000000000000000000000da0d"
STATE_VERSION = 1


@dataclass(frozen=True)
class PlayerView:
    """Read model of one player."""
    user_address: str
    coords: Optional[Coords]
    balance: int
    sponsorships: int
    claimable: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_address": self.user_address,
            "coords": self.coords.to_dict() if self.coords else None,
            "balance": str(self.balance),
            "sponsorships": str(self.sponsorships),
            "claimable": str(self.claimable),
        }


def _percentage(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 100


class DaoVsDao(SharesRedeemer):
    """
    A single game instance.

    Args:
        owner: administrator identity; receives the initial supply, the
            participation fees and the slashing taxes
        config: seed configuration (defaults to the global config)
        clock: time source (defaults to wall time)
        address: this game's own identity, used as the certificate manager
        bus / store: event sinks; fresh ones are created when omitted
    """

    def __init__(
        self,
        owner: str,
        config: Optional[GameConfig] = None,
        clock: Optional[Clock] = None,
        address: str = DEFAULT_GAME_ADDRESS,
        bus: Optional[EventBus] = None,
        store: Optional[EventStore] = None,
    ):
        self.config = config or get_config()
        self.clock = clock or SystemClock()
        self._address = address
        self.bus = bus or EventBus()
        self.store = store or EventStore()
        self.audit: Optional[AuditLogger] = None
        if self.config.observability.audit_enabled.get():
            self.audit = AuditLogger(get_logger("audit", GameLayer.GAME))

        self.state = GameState(
            gate=OwnershipGate(owner),
            params=GameParameters.from_config(self.config),
        )
        initial_supply = self.config.economics.initial_supply.get()
        if initial_supply:
            self.state.token.mint(owner, initial_supply)
        self._commit("initialize", owner, self.clock.now(), [], None)
        logger.info("Game created", owner=owner, address=address, initial_supply=initial_supply)

    # ════════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ════════════════════════════════════════════════════════════════════════

    @property
    def address(self) -> str:
        return self._address

    @contextmanager
    def _transaction(self, operation: str, caller: str) -> Iterator[Tuple[int, List[Event]]]:
        """Snapshot state, yield (now, outbox), restore the snapshot on any error."""
        now = self.clock.now()
        emitter = self.state.emitter
        snapshot = copy.deepcopy(self.state, {id(emitter): emitter})
        token = set_correlation_id(generate_correlation_id())
        start = time.monotonic()
        outbox: List[Event] = []
        try:
            yield now, outbox
        except GameError as e:
            self.state = snapshot
            logger.operation(
                operation, (time.monotonic() - start) * 1000, success=False,
                caller=caller, reason=e.reason,
            )
            raise
        except Exception:
            self.state = snapshot
            logger.error(f"Operation {operation} failed", error_code="internal", exc_info=True,
                         caller=caller)
            raise
        finally:
            correlation_id_var.reset(token)
        logger.operation(operation, (time.monotonic() - start) * 1000, caller=caller)

    def _commit(
        self,
        operation: str,
        caller: str,
        now: int,
        outbox: List[Event],
        result: Any,
    ) -> Receipt:
        events = list(outbox)
        for sender, recipient, amount in self.state.token.drain_journal():
            events.append(Transfer(sender=sender, recipient=recipient, amount=amount))
        self.state.native.drain_journal()
        correlation_id = correlation_id_var.get() or None
        for event in events:
            event.correlation_id = correlation_id
        if events:
            self.store.append(f"game:{self._address}", events)
            for event in events:
                self.bus.publish(event)
        return Receipt(operation=operation, caller=caller, timestamp=now, events=events, result=result)

    def _require_owner(self, caller: str, action: str, **details: Any) -> None:
        try:
            self.state.gate.require_owner(caller)
        except AuthorizationError:
            if self.audit:
                self.audit.log(caller, action, "game", self._address, "denied", **details)
            raise

    def _audited(self, caller: str, action: str, **details: Any) -> None:
        if self.audit:
            self.audit.log(caller, action, "game", self._address, "success", **details)

    # ════════════════════════════════════════════════════════════════════════
    # ADMINISTRATION
    # ════════════════════════════════════════════════════════════════════════

    def add_realm(self, caller: str) -> Receipt:
        with self._transaction("add_realm", caller) as (now, outbox):
            self._require_owner(caller, "add_realm")
            realm = self.state.grid.add_realm()
            outbox.append(RealmAdded(realm=realm))
            self._audited(caller, "add_realm", realm=realm)
            return self._commit("add_realm", caller, now, outbox, realm)

    def set_slashing_percentage(self, caller: str, value: int) -> Receipt:
        with self._transaction("set_slashing_percentage", caller) as (now, outbox):
            self._require_owner(caller, "set_slashing_percentage", value=value)
            if not _percentage(value):
                raise BoundsError("Invalid slashing % value", value=value)
            self.state.params.slashing_percentage = value
            outbox.append(SlashingPercentageUpdated(value=value))
            self._audited(caller, "set_slashing_percentage", value=value)
            return self._commit("set_slashing_percentage", caller, now, outbox, value)

    def set_slashing_tax(self, caller: str, value: int) -> Receipt:
        with self._transaction("set_slashing_tax", caller) as (now, outbox):
            self._require_owner(caller, "set_slashing_tax", value=value)
            if not _percentage(value):
                raise BoundsError("Invalid slashing tax value", value=value)
            self.state.params.slashing_tax = value
            outbox.append(SlashingTaxUpdated(value=value))
            self._audited(caller, "set_slashing_tax", value=value)
            return self._commit("set_slashing_tax", caller, now, outbox, value)

    def set_participation_fee(self, caller: str, value: int) -> Receipt:
        with self._transaction("set_participation_fee", caller) as (now, outbox):
            self._require_owner(caller, "set_participation_fee", value=value)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise BoundsError("Invalid participation fee value", value=value)
            self.state.params.participation_fee = value
            outbox.append(ParticipationFeeUpdated(value=value))
            self._audited(caller, "set_participation_fee", value=value)
            return self._commit("set_participation_fee", caller, now, outbox, value)

    def set_percentage_for_referrer(self, caller: str, value: int) -> Receipt:
        with self._transaction("set_percentage_for_referrer", caller) as (now, outbox):
            self._require_owner(caller, "set_percentage_for_referrer", value=value)
            if not _percentage(value):
                raise BoundsError("Invalid % for referrers value", value=value)
            self.state.params.percentage_for_referrer = value
            outbox.append(PercentageForReferrerUpdated(value=value))
            self._audited(caller, "set_percentage_for_referrer", value=value)
            return self._commit("set_percentage_for_referrer", caller, now, outbox, value)

    def set_sponsorship_certificate_emitter(
        self, caller: str, emitter: Optional[CertificateIssuer]
    ) -> Receipt:
        with self._transaction("set_sponsorship_certificate_emitter", caller) as (now, outbox):
            address = emitter.address if emitter is not None else ZERO_ADDRESS
            self._require_owner(caller, "set_sponsorship_certificate_emitter", emitter=address)
            if emitter is None or is_zero_address(address):
                raise BoundsError("Invalid emitter")
            self.state.emitter = emitter
            outbox.append(SponsorshipCertificateEmitterUpdated(emitter=address))
            self._audited(caller, "set_sponsorship_certificate_emitter", emitter=address)
            return self._commit("set_sponsorship_certificate_emitter", caller, now, outbox, address)

    def transfer_ownership(self, caller: str, new_owner: str) -> Receipt:
        with self._transaction("transfer_ownership", caller) as (now, outbox):
            self._require_owner(caller, "transfer_ownership", new_owner=new_owner)
            previous = self.state.gate.transfer_ownership(caller, new_owner)
            outbox.append(OwnershipTransferred(previous_owner=previous, new_owner=new_owner))
            self._audited(caller, "transfer_ownership", new_owner=new_owner)
            return self._commit("transfer_ownership", caller, now, outbox, new_owner)

    # ════════════════════════════════════════════════════════════════════════
    # GAMEPLAY
    # ════════════════════════════════════════════════════════════════════════

    def add_row(self, caller: str, realm: int) -> Receipt:
        with self._transaction("add_row", caller) as (now, outbox):
            row = self.state.grid.add_row(realm)
            outbox.append(RowAdded(realm=realm, row=row, length=row + 1))
            return self._commit("add_row", caller, now, outbox, row)

    def place_user(
        self,
        caller: str,
        coords: Any,
        referrer: Optional[str] = None,
        value: int = 0,
    ) -> Receipt:
        """Enter the grid at ``coords`` paying ``value`` native coins."""
        coords = Coords.parse(coords)
        with self._transaction("place_user", caller) as (now, outbox):
            placed = _place_user(self.state, caller, coords, referrer, value, now, outbox)
            return self._commit("place_user", caller, now, outbox, placed)

    def swap(self, caller: str, coords: Any) -> Receipt:
        """Move to an adjacent cell, slashing its occupant if there is one."""
        coords = Coords.parse(coords)
        with self._transaction("swap", caller) as (now, outbox):
            settlement = _swap(self.state, caller, coords, now, outbox)
            return self._commit("swap", caller, now, outbox, settlement)

    def transfer(self, caller: str, recipient: str, amount: int) -> Receipt:
        """Move game tokens, settling accrued yield on both sides first."""
        with self._transaction("transfer", caller) as (now, outbox):
            if amount <= 0:
                raise BoundsError("Amount must be greater than 0")
            settle(self.state, caller, now, outbox)
            settle(self.state, recipient, now, outbox)
            self.state.token.transfer(caller, recipient, amount)
            return self._commit("transfer", caller, now, outbox, amount)

    def sponsor(self, caller: str, beneficiary: str, amount: int) -> Receipt:
        """Deposit ``amount`` into ``beneficiary``'s pool; the caller receives a certificate."""
        with self._transaction("sponsor", caller) as (now, outbox):
            if amount <= 0:
                raise BoundsError("Amount must be greater than 0")
            if beneficiary not in self.state.players:
                raise StateError(NOT_A_PLAYER, user=beneficiary)
            settle(self.state, caller, now, outbox)
            if self.state.token.balance_of(caller) < amount:
                raise StateError(
                    "Insufficient balance to sponsor",
                    balance=self.state.token.balance_of(caller),
                    amount=amount,
                )
            if self.state.emitter is None:
                raise StateError("Sponsorship certificate emitter not set")

            player = self.state.players.lookup_by_identity(beneficiary)
            self.state.token.burn(caller, amount)
            shares = self.state.pools.deposit(player, amount)
            certificate_id = self.state.emitter.emit_certificate(
                self._address, caller, beneficiary, amount, shares
            )
            outbox.append(Sponsored(
                sponsor=caller,
                beneficiary=beneficiary,
                amount=amount,
                shares=shares,
                certificate_id=certificate_id,
            ))
            logger.info("Sponsored", sponsor=caller, beneficiary=beneficiary, amount=amount,
                        shares=shares, certificate_id=certificate_id)
            return self._commit("sponsor", caller, now, outbox, certificate_id)

    def redeem_sponsorship_shares(
        self,
        caller: str,
        owner: str,
        beneficiary: str,
        shares: int,
    ) -> Receipt:
        """Emitter-only: convert ``shares`` of a pool to value paid to ``owner``."""
        with self._transaction("redeem_sponsorship_shares", caller) as (now, outbox):
            if caller != self.state.emitter_address or is_zero_address(caller):
                raise AuthorizationError("Only emitter can revoke sponsor", caller=caller)
            if shares <= 0:
                raise BoundsError("Cannot reimburse 0 shares")
            player = self.state.players.lookup_by_identity(beneficiary)
            settle(self.state, owner, now, outbox)
            value = self.state.pools.redeem(player, shares)
            if value:
                self.state.token.mint(owner, value)
            outbox.append(SponsorshipRedeemed(
                owner=owner,
                beneficiary=beneficiary,
                shares=shares,
                amount=value,
            ))
            return self._commit("redeem_sponsorship_shares", caller, now, outbox, value)

    def fund_native(self, identity: str, amount: int) -> None:
        """Credit native coins to a wallet so it can pay participation fees."""
        self.state.native.credit(identity, amount)
        self.state.native.drain_journal()

    # ════════════════════════════════════════════════════════════════════════
    # READ MODEL
    # ════════════════════════════════════════════════════════════════════════

    @property
    def owner(self) -> str:
        return self.state.owner

    @property
    def params(self) -> GameParameters:
        return self.state.params

    @property
    def emitter(self) -> str:
        return self.state.emitter_address

    @property
    def nr_players(self) -> int:
        return len(self.state.players)

    @property
    def nr_realms(self) -> int:
        return self.state.grid.nr_realms

    def balance_of(self, identity: str) -> int:
        return self.state.token.balance_of(identity)

    def native_balance_of(self, identity: str) -> int:
        return self.state.native.balance_of(identity)

    @property
    def total_supply(self) -> int:
        return self.state.token.total_supply

    def cell_at(self, coords: Any) -> str:
        occupant = self.state.grid.cell_at(Coords.parse(coords))
        return occupant if occupant is not None else ZERO_ADDRESS

    def get_last_row(self, realm: int) -> List[str]:
        return [cell if cell is not None else ZERO_ADDRESS for cell in self.state.grid.last_row(realm)]

    def is_player(self, identity: str) -> bool:
        return identity in self.state.players

    def claimable(self, identity: str) -> int:
        return claimable(self.state, identity, self.clock.now())

    def sponsorship_shares(self, identity: str) -> int:
        return self.state.pools.shares_of(identity)

    def get_player_data(self, identity: str) -> PlayerView:
        now = self.clock.now()
        player = None
        if identity in self.state.players:
            player = self.state.players.lookup_by_identity(identity)
        return PlayerView(
            user_address=identity,
            coords=player.coords if player else None,
            balance=self.state.token.balance_of(identity),
            sponsorships=player.sponsorships if player else 0,
            claimable=claimable(self.state, identity, now),
        )

    def get_game_data(self) -> Dict[str, Any]:
        return {
            "lands": self.state.grid.lands(),
            "players": [self.get_player_data(identity) for identity in self.state.players.identities()],
        }

    # ════════════════════════════════════════════════════════════════════════
    # SNAPSHOTS
    # ════════════════════════════════════════════════════════════════════════

    def export_state(self) -> Dict[str, Any]:
        """JSON-compatible snapshot (amounts as decimal strings)."""
        now = self.clock.now()
        state = self.state
        return {
            "version": STATE_VERSION,
            "timestamp": now,
            "owner": state.owner,
            "emitter": state.emitter_address,
            "parameters": state.params.to_dict(),
            "lands": state.grid.lands(),
            "players": [
                {
                    "user_address": player.identity,
                    "coords": player.coords.to_dict(),
                    "balance": str(state.token.balance_of(player.identity)),
                    "sponsorships": str(player.sponsorships),
                    "claimable": str(claimable(state, player.identity, now)),
                    "last_attack_at": player.last_attack_at,
                    "last_attacked_at": player.last_attacked_at,
                }
                for player in state.players
            ],
            "pools": [
                {
                    "beneficiary": pool.beneficiary,
                    "total_shares": str(pool.total_shares),
                    "sponsorships": str(state.players.lookup_by_identity(pool.beneficiary).sponsorships),
                }
                for pool in state.pools.pools()
            ],
            "token": {
                "name": state.token.name,
                "symbol": state.token.symbol,
                "total_supply": str(state.token.total_supply),
                "balances": {k: str(v) for k, v in sorted(state.token.holders.items())},
            },
        }

    def state_digest(self) -> str:
        """SHA-256 of the canonical JSON snapshot."""
        return sha256_bytes(canonical_json_bytes(self.export_state()))

    def validate_export(self) -> List[str]:
        """Validate ``export_state()`` against the game-state schema."""
        from daovsdao.schema import validate_against_schema

        return validate_against_schema(
            self.export_state(), SCHEMA_DIR / "game-state.schema.json"
        )
