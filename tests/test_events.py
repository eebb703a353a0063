"""
Event infrastructure and observability tests.

Run with: pytest tests/test_events.py -v
"""

import io
import json
import logging

import pytest

from daovsdao.core import parse_ether
from daovsdao.errors import GameError
from daovsdao.events import (
    Event,
    EventBus,
    EventStore,
    RealmAdded,
    Receipt,
    RowAdded,
    Slashed,
    Swapped,
    Transfer,
    UserPlaced,
    YieldClaimed,
)
from daovsdao.observability import (
    AuditLogger,
    GameLayer,
    StructuredHandler,
    configure_logging,
    get_logger,
    timed_operation,
)

from addresses import OWNER, USER1, USER2, USER3


class TestEventBus:
    """Tests for EventBus."""

    def test_typed_subscription(self):
        bus = EventBus()
        seen = []

        @bus.subscribe(RealmAdded)
        def on_realm(event):
            seen.append(event.realm)

        bus.publish(RealmAdded(realm=3))
        bus.publish(RowAdded(realm=3, row=1, length=2))
        assert seen == [3]

    def test_wildcard_subscription(self):
        bus = EventBus()
        seen = []
        bus.subscribe()(lambda e: seen.append(e.event_type))
        bus.publish(RealmAdded())
        bus.publish(Transfer())
        assert seen == ["RealmAdded", "Transfer"]

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(RealmAdded, priority=1)(lambda e: order.append("low"))
        bus.subscribe(RealmAdded, priority=10)(lambda e: order.append("high"))
        bus.publish(RealmAdded())
        assert order == ["high", "low"]

    def test_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(Transfer, filter_func=lambda e: e.amount > 5)(seen.append)
        bus.publish(Transfer(amount=1))
        bus.publish(Transfer(amount=10))
        assert [e.amount for e in seen] == [10]

    def test_failing_handler_is_isolated(self):
        errors = []
        bus = EventBus(on_error=errors.append)
        seen = []

        @bus.subscribe(RealmAdded, priority=5)
        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(RealmAdded)(seen.append)
        bus.publish(RealmAdded())
        assert len(seen) == 1
        assert len(errors) == 1
        assert "broken" in str(errors[0])
        assert isinstance(errors[0].cause, RuntimeError)


class TestEventStore:
    """Tests for EventStore."""

    def test_streams_and_versions(self):
        store = EventStore()
        store.append("a", [RealmAdded(realm=0), RowAdded(realm=0, row=1)])
        records = store.append("b", [RealmAdded(realm=0)])
        assert records[0].sequence_number == 3
        assert records[0].version == 1
        assert len(store.read_stream("a")) == 2
        assert len(store.read_stream("a", from_version=1)) == 1
        assert store.total_events == 3

    def test_of_type(self):
        store = EventStore()
        store.append("a", [RealmAdded(), Transfer(amount=1), Transfer(amount=2)])
        assert [t.amount for t in store.of_type(Transfer)] == [1, 2]

    def test_read_all_window(self):
        store = EventStore()
        store.append("a", [RealmAdded(realm=i) for i in range(5)])
        window = store.read_all(from_position=1, max_count=2)
        assert [r.event.realm for r in window] == [1, 2]
        assert window[0].to_dict()["event"]["event_type"] == "RealmAdded"


class TestEvent:
    def test_payload_excludes_envelope(self):
        event = YieldClaimed(user=USER1, amount=5)
        assert event.payload() == {"user": USER1, "amount": 5}

    def test_digest_ignores_envelope(self):
        a = Transfer(sender=USER1, recipient=USER2, amount=7)
        b = Transfer(sender=USER1, recipient=USER2, amount=7)
        assert a.event_id != b.event_id
        assert a.digest() == b.digest()
        assert a.digest() != Transfer(sender=USER1, recipient=USER2, amount=8).digest()

    def test_slashed_totals(self):
        event = Slashed(
            subtracted_from_attacked_balance=100,
            subtracted_from_attacked_sponsorships=50,
            slashing_taxes=15,
            added_to_attacker_balance=90,
            added_to_attacker_sponsorships=45,
        )
        assert event.subtracted == 150
        assert event.distributed == 150

    def test_receipt_lookup(self):
        receipt = Receipt("op", OWNER, 0, [RealmAdded(realm=1), Transfer(amount=1), Transfer(amount=2)])
        assert receipt.count(Transfer) == 2
        assert receipt.first(RealmAdded).realm == 1
        assert receipt.first(Swapped) is None
        assert receipt.count(Event) == 3


class TestGameEventFlow:
    """Events from the game reach the store and the bus only on commit."""

    def test_committed_events_published(self, game):
        seen = []
        game.bus.subscribe()(seen.append)
        game.add_realm(OWNER)
        game.place_user(USER1, (0, 0, 0))
        types = [e.event_type for e in seen]
        assert types == ["RealmAdded", "UserPlaced", "RowAdded"]

    def test_rejected_call_publishes_nothing(self, game):
        game.add_realm(OWNER)
        seen = []
        game.bus.subscribe()(seen.append)
        before = game.store.total_events
        with pytest.raises(GameError):
            game.place_user(USER1, (0, 4, 0))
        assert seen == []
        assert game.store.total_events == before

    def test_initial_mint_recorded(self, game):
        mints = game.store.of_type(Transfer)
        assert len(mints) == 1
        assert mints[0].recipient == OWNER
        assert mints[0].amount == parse_ether("1")

    def test_events_share_correlation_id(self, three_players, clock):
        clock.set(1000)
        three_players.transfer(OWNER, USER1, parse_ether("0.25"))
        three_players.transfer(OWNER, USER2, parse_ether("0.50"))
        clock.set(2000)
        receipt = three_players.swap(USER2, (0, 0, 0))
        ids = {e.correlation_id for e in receipt.events}
        assert len(ids) == 1
        assert next(iter(ids)).startswith("corr-")

    def test_yield_claims_precede_slash(self, three_players, clock):
        clock.set(1000)
        three_players.transfer(OWNER, USER1, parse_ether("0.25"))
        three_players.transfer(OWNER, USER2, parse_ether("0.50"))
        clock.set(2000)
        receipt = three_players.swap(USER2, (0, 0, 0))
        types = [type(e) for e in receipt.events if not isinstance(e, Transfer)]
        assert types == [YieldClaimed, YieldClaimed, Slashed, Swapped]

    def test_place_receipt_result(self, game):
        game.add_realm(OWNER)
        receipt = game.place_user(USER3, (0, 0, 0))
        assert receipt.operation == "place_user"
        assert receipt.caller == USER3
        assert receipt.first(UserPlaced).user == USER3


class TestStructuredLogging:
    """JSON-line logging through the package root logger."""

    @pytest.fixture
    def stream(self):
        buf = io.StringIO()
        root = configure_logging(level="debug", fmt="json", stream=buf)
        yield buf
        for handler in list(root.handlers):
            if isinstance(handler, StructuredHandler):
                root.removeHandler(handler)
        root.setLevel(logging.NOTSET)

    def lines(self, buf):
        return [json.loads(line) for line in buf.getvalue().splitlines()]

    def test_json_line(self, stream):
        get_logger("unit", GameLayer.PLACEMENT).info("Row added", realm=0, row=1)
        (entry,) = self.lines(stream)
        assert entry["level"] == "info"
        assert entry["layer"] == "placement"
        assert entry["logger"] == "daovsdao.placement.unit"
        assert entry["context"] == {"realm": 0, "row": 1}

    def test_rejections_logged_with_reason(self, stream, game):
        with pytest.raises(GameError):
            game.add_realm(USER1)
        rejected = [e for e in self.lines(stream) if e.get("operation") == "add_realm"]
        assert rejected[-1]["message"] == "Operation add_realm rejected"
        assert rejected[-1]["context"]["reason"] == "Ownable: caller is not the owner"
        assert rejected[-1]["correlation_id"].startswith("corr-")

    def test_text_format(self):
        buf = io.StringIO()
        root = configure_logging(level="info", fmt="text", stream=buf)
        try:
            get_logger("unit", GameLayer.SWAP).warning("Cooldown", user=USER1)
        finally:
            for handler in list(root.handlers):
                if isinstance(handler, StructuredHandler):
                    root.removeHandler(handler)
            root.setLevel(logging.NOTSET)
        assert buf.getvalue().rstrip().endswith(f"WARNING daovsdao.swap.unit: Cooldown user={USER1}")

    def test_configure_is_idempotent(self, stream):
        root = configure_logging(level="debug", stream=stream)
        assert sum(isinstance(h, StructuredHandler) for h in root.handlers) == 1

    def test_timed_operation(self, stream):
        log = get_logger("unit", GameLayer.SCENARIO)

        @timed_operation(log, "replay")
        def replay():
            return 42

        assert replay() == 42
        (entry,) = self.lines(stream)
        assert entry["operation"] == "replay"
        assert "duration_ms" in entry


class TestAuditLogger:
    """Hash-chained audit trail."""

    @pytest.fixture
    def audit(self):
        return AuditLogger(get_logger("audit", GameLayer.GAME))

    def test_chain_verifies(self, audit):
        audit.log(OWNER, "add_realm", "game", "g", "success", realm=0)
        audit.log(USER1, "add_realm", "game", "g", "denied")
        assert audit.verify_chain()
        assert audit.events[1].event_hash != audit.events[0].event_hash

    def test_tampering_detected(self, audit):
        audit.log(OWNER, "set_slashing_tax", "game", "g", "success", value=10)
        audit.log(OWNER, "set_slashing_tax", "game", "g", "success", value=11)
        audit.events[0].details["value"] = "99"
        assert not audit.verify_chain()

    def test_game_audits_owner_calls(self, game):
        game.set_slashing_tax(OWNER, 12)
        with pytest.raises(GameError):
            game.set_slashing_tax(USER1, 13)
        entries = [(e.actor, e.action, e.outcome) for e in game.audit.events]
        assert entries == [
            (OWNER, "set_slashing_tax", "success"),
            (USER1, "set_slashing_tax", "denied"),
        ]
        assert game.audit.verify_chain()

    def test_audit_can_be_disabled(self, clock):
        from daovsdao.config import GameConfig
        from daovsdao.game import DaoVsDao

        config = GameConfig.from_dict({"observability": {"audit_enabled": False}})
        assert DaoVsDao(OWNER, config=config, clock=clock).audit is None
