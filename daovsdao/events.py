"""
DaoVsDao Event Infrastructure

Settlement facts emitted by the engine, an in-memory event bus for
subscribers, and an append-only store for replay and audit.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          EVENT INFRASTRUCTURE                            │
    │                                                                          │
    │  Event Bus           Event Store         Receipts                        │
    │  ├─ Typed events     ├─ Append-only      ├─ Events of one call          │
    │  ├─ Priorities       ├─ Streams          └─ Lookup by type              │
    │  └─ Filters          └─ Replay                                          │
    │                                                                          │
    │  Grid Events         Economic Events      Admin Events                   │
    │  ├─ RealmAdded       ├─ Slashed           ├─ SlashingPercentageUpdated  │
    │  ├─ RowAdded         ├─ Sponsored         ├─ SlashingTaxUpdated         │
    │  ├─ UserPlaced       ├─ SponsorshipRedeemed├─ ParticipationFeeUpdated   │
    │  └─ Swapped          └─ Transfer          └─ ...                        │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Events raised during a game call are buffered and published only when the
call commits, so a rejected call never reaches subscribers.

Usage
─────

    bus = EventBus()

    @bus.subscribe(Slashed)
    def on_slash(event: Slashed):
        print(event.attacker, event.slashing_taxes)
"""

from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Set,
    Type,
    TypeVar,
)

from daovsdao.core import canonical_json_bytes

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events.

    Events are immutable facts representing something that happened.
    Each event has a unique ID, timestamp, and optional metadata.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    def payload(self) -> Dict[str, Any]:
        """Event fields without the envelope (id, timestamp, correlation)."""
        data = asdict(self)
        for key in ("event_id", "event_timestamp", "correlation_id", "metadata"):
            data.pop(key, None)
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def digest(self) -> str:
        """Deterministic digest of the event payload."""
        body = {"event_type": self.event_type, "payload": self.payload()}
        return hashlib.sha256(canonical_json_bytes(body)).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# GRID EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class RealmAdded(Event):
    """Emitted when the owner appends a realm."""
    realm: int = 0


@dataclass
class RowAdded(Event):
    """Emitted when a realm grows by one row."""
    realm: int = 0
    row: int = 0
    length: int = 0
    automatic: bool = False


@dataclass
class UserPlaced(Event):
    """Emitted when a player enters the grid."""
    user: str = ""
    realm: int = 0
    row: int = 0
    column: int = 0
    referrer: str = ""
    fee_paid: int = 0
    referrer_cut: int = 0
    treasury_cut: int = 0


@dataclass
class Swapped(Event):
    """Emitted when a player moves to a new cell."""
    user: str = ""
    displaced: str = ""
    from_coords: Dict[str, int] = field(default_factory=dict)
    to_coords: Dict[str, int] = field(default_factory=dict)


# ════════════════════════════════════════════════════════════════════════════
# ECONOMIC EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Slashed(Event):
    """Emitted when a swap slashes the occupant of the target cell."""
    attacker: str = ""
    attacked: str = ""
    subtracted_from_attacked_balance: int = 0
    subtracted_from_attacked_sponsorships: int = 0
    slashing_taxes: int = 0
    added_to_attacker_balance: int = 0
    added_to_attacker_sponsorships: int = 0

    @property
    def subtracted(self) -> int:
        return self.subtracted_from_attacked_balance + self.subtracted_from_attacked_sponsorships

    @property
    def distributed(self) -> int:
        return (
            self.slashing_taxes
            + self.added_to_attacker_balance
            + self.added_to_attacker_sponsorships
        )


@dataclass
class YieldClaimed(Event):
    """Emitted when accrued yield is minted into a player balance."""
    user: str = ""
    amount: int = 0


@dataclass
class Transfer(Event):
    """Emitted on every game-token movement (mint: sender empty, burn: recipient empty)."""
    sender: str = ""
    recipient: str = ""
    amount: int = 0


@dataclass
class Sponsored(Event):
    """Emitted when a sponsor deposits into a player's pool."""
    sponsor: str = ""
    beneficiary: str = ""
    amount: int = 0
    shares: int = 0
    certificate_id: int = 0


@dataclass
class SponsorshipRedeemed(Event):
    """Emitted when pool shares are redeemed through a certificate."""
    owner: str = ""
    beneficiary: str = ""
    shares: int = 0
    amount: int = 0


# ════════════════════════════════════════════════════════════════════════════
# ADMIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class SlashingPercentageUpdated(Event):
    value: int = 0


@dataclass
class SlashingTaxUpdated(Event):
    value: int = 0


@dataclass
class ParticipationFeeUpdated(Event):
    value: int = 0


@dataclass
class PercentageForReferrerUpdated(Event):
    value: int = 0


@dataclass
class SponsorshipCertificateEmitterUpdated(Event):
    emitter: str = ""


@dataclass
class OwnershipTransferred(Event):
    previous_owner: str = ""
    new_owner: str = ""


# ════════════════════════════════════════════════════════════════════════════
# CERTIFICATE EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class CertificateEmitted(Event):
    certificate_id: int = 0
    owner: str = ""
    receiver: str = ""
    amount: int = 0
    shares: int = 0


@dataclass
class CertificateRedeemed(Event):
    certificate_id: int = 0
    owner: str = ""
    shares: int = 0
    amount: int = 0
    closed: bool = False


@dataclass
class CertificateTransferred(Event):
    certificate_id: int = 0
    sender: str = ""
    recipient: str = ""


@dataclass
class MetadataUpdate(Event):
    certificate_id: int = 0


@dataclass
class SponsorshipManagerUpdated(Event):
    manager: str = ""


@dataclass
class SponsorshipMetadataFactoryUpdated(Event):
    factory: str = ""


# ════════════════════════════════════════════════════════════════════════════
# RECEIPT
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Receipt:
    """Events produced by one committed call."""
    operation: str
    caller: str
    timestamp: int
    events: List[Event] = field(default_factory=list)
    result: Any = None

    def events_of(self, event_type: Type[E]) -> List[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def first(self, event_type: Type[E]) -> Optional[E]:
        found = self.events_of(event_type)
        return found[0] if found else None

    def count(self, event_type: Type[Event]) -> int:
        return len(self.events_of(event_type))


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Handlers run synchronously in priority order. A failing handler is
    reported through ``on_error`` (or logged) and never undoes the call
    that produced the event.

    Example:
        bus = EventBus()

        @bus.subscribe(UserPlaced, Swapped)
        def on_move(event):
            print(event.event_type)
    """

    def __init__(
        self,
        on_error: Optional[Callable[[EventHandlerError], None]] = None,
    ):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (none = all events)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        with self._lock:
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call a handler with error handling."""
        try:
            handler(event)
        except Exception as e:
            error = EventHandlerError(event, handler, e)
            if self._on_error:
                self._on_error(error)
            else:
                logger.warning(str(error))


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
        }


class EventStore:
    """
    Append-only event store.

    Events are organized into streams (one per game or certificate
    registry). Supports replay from any global position.
    """

    def __init__(self):
        self._events: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._sequence_number = 0
        self._lock = threading.RLock()

    def append(self, stream_id: str, events: List[Event]) -> List[EventRecord]:
        """Append events to a stream."""
        with self._lock:
            stream = self._streams.setdefault(stream_id, [])
            records = []
            for event in events:
                self._sequence_number += 1
                record = EventRecord(
                    sequence_number=self._sequence_number,
                    event=event,
                    stream_id=stream_id,
                    version=len(stream) + 1,
                )
                self._events.append(record)
                stream.append(record)
                records.append(record)
            return records

    def read_stream(self, stream_id: str, from_version: int = 0) -> List[Event]:
        """Read events from a stream."""
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])[from_version:]]

    def read_all(self, from_position: int = 0, max_count: int = 1000) -> List[EventRecord]:
        """Read events from all streams."""
        with self._lock:
            return self._events[from_position:from_position + max_count]

    def of_type(self, event_type: Type[E]) -> List[E]:
        with self._lock:
            return [r.event for r in self._events if isinstance(r.event, event_type)]

    @property
    def total_events(self) -> int:
        with self._lock:
            return len(self._events)
