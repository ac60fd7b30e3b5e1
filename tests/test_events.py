"""
Event bus tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from soulmint.events import (
    Event,
    EventBus,
    EventLog,
    MintFailed,
    RootTransitioned,
    TokenMinted,
    get_event_bus,
)


class TestEvents:
    def test_event_type_and_dict(self):
        event = TokenMinted(recipient="0xabc", token_id=1, nullifier=2)
        data = event.to_dict()
        assert data["event_type"] == "TokenMinted"
        assert data["amount"] == 1
        assert '"recipient": "0xabc"' in event.to_json()

    def test_digest_ignores_envelope(self):
        a = TokenMinted(recipient="0xabc", token_id=1, nullifier=2)
        b = TokenMinted(recipient="0xabc", token_id=1, nullifier=2)
        assert a.event_id != b.event_id
        assert a.digest() == b.digest()
        assert a.digest() != TokenMinted(recipient="0xabc", token_id=1, nullifier=3).digest()


class TestEventBus:
    """Synchronous pub/sub."""

    def test_subscribe_by_type(self):
        bus = EventBus()
        seen = []

        @bus.subscribe(TokenMinted)
        def on_mint(event):
            seen.append(event)

        bus.publish(TokenMinted(recipient="0x1"))
        bus.publish(MintFailed(recipient="0x1", reason="INVALID_PROOF"))
        assert len(seen) == 1

    def test_wildcard_subscription(self):
        bus = EventBus()
        log = EventLog(bus)
        bus.publish(TokenMinted())
        bus.publish(RootTransitioned(new_root=5))
        assert len(log) == 2
        assert log.of_type(RootTransitioned)[0].new_root == 5
        assert all(isinstance(e, Event) for e in log.events)

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe(TokenMinted, priority=1)(lambda e: order.append("low"))
        bus.subscribe(TokenMinted, priority=10)(lambda e: order.append("high"))
        bus.publish(TokenMinted())
        assert order == ["high", "low"]

    def test_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(MintFailed, filter_func=lambda e: e.reason == "NULLIFIER_USED")(seen.append)
        bus.publish(MintFailed(reason="INVALID_PROOF"))
        bus.publish(MintFailed(reason="NULLIFIER_USED"))
        assert [e.reason for e in seen] == ["NULLIFIER_USED"]

    def test_handler_error_isolated(self):
        errors = []
        bus = EventBus(on_error=errors.append)
        seen = []

        def broken(event):
            raise ValueError("boom")

        bus.subscribe(TokenMinted, priority=5)(broken)
        bus.subscribe(TokenMinted)(seen.append)
        bus.publish(TokenMinted())

        assert len(seen) == 1
        assert len(errors) == 1
        assert isinstance(errors[0].cause, ValueError)
        assert bus.metrics["error_count"] == 1
        assert bus.metrics["handled_count"] == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe(TokenMinted)(seen.append)
        assert bus.unsubscribe(seen.append)
        bus.publish(TokenMinted())
        assert seen == []
        assert not bus.unsubscribe(seen.append)

    def test_global_bus(self):
        assert get_event_bus() is get_event_bus()
