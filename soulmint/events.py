"""
SOULMINT Events

Typed events and a synchronous in-memory bus. The authorizer publishes only
after a mint or root transition has committed, so subscribers never observe
state that is later rolled back.

Architecture
────────────

    ┌──────────────────────────────────────────────────────────────┐
    │                         EVENT BUS                            │
    │                                                              │
    │  Mint Events           Registry Events       Recording       │
    │  ├─ TokenMinted        └─ RootTransitioned   └─ EventLog     │
    │  └─ MintFailed                                               │
    │                                                              │
    └──────────────────────────────────────────────────────────────┘

Usage
─────

    from soulmint.events import EventBus, TokenMinted

    bus = EventBus()

    @bus.subscribe(TokenMinted)
    def on_mint(event: TokenMinted):
        print(f"{event.recipient} received token {event.token_id}")

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import threading
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type

from soulmint.observability import MintLayer, get_logger

logger = get_logger("bus", MintLayer.EVENTS)

# Envelope fields differ between two publications of the same fact.
_ENVELOPE = frozenset({"event_id", "event_timestamp", "correlation_id", "metadata"})


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events.

    An event is an immutable fact: a payload defined by the subclass plus an
    envelope (id, UTC timestamp, optional correlation id, free metadata).
    """

    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def payload(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if k not in _ENVELOPE}

    def to_dict(self) -> Dict[str, Any]:
        return {"event_type": self.event_type, **asdict(self)}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """SHA-256 over the canonical payload; the envelope is excluded."""
        canonical = json.dumps(
            {"event_type": self.event_type, **self.payload()},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class TokenMinted(Event):
    """Emitted when a credential token is issued."""
    recipient: str = ""
    token_id: int = 0
    amount: int = 1
    nullifier: int = 0


@dataclass
class MintFailed(Event):
    """Emitted when a mint attempt fails any check."""
    recipient: str = ""
    reason: str = ""
    message: str = ""
    failed_state: str = ""


@dataclass
class RootTransitioned(Event):
    """Emitted when the registry root advances."""
    previous_root: int = 0
    new_root: int = 0
    effective_timestamp: int = 0


# ════════════════════════════════════════════════════════════════════════════
# SUBSCRIPTIONS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]
EventFilter = Callable[[Event], bool]


@dataclass(frozen=True)
class Subscription:
    """A handler bound to event types, with ordering and an optional filter."""
    handler: EventHandler
    event_types: FrozenSet[Type[Event]]
    priority: int
    sequence: int
    filter_func: Optional[EventFilter] = None

    @property
    def sort_key(self) -> tuple:
        return (-self.priority, self.sequence)

    def matches(self, event: Event) -> bool:
        if not isinstance(event, tuple(self.event_types)):
            return False
        return self.filter_func is None or self.filter_func(event)


class EventHandlerError(Exception):
    """A subscriber raised while handling an event."""

    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


def _log_handler_error(error: EventHandlerError) -> None:
    logger.error(
        str(error),
        error_code="EVENT_HANDLER_FAILED",
        event_type=error.event.event_type,
    )


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


class EventBus:
    """
    Synchronous publish/subscribe.

    Handlers run in descending priority, ties in subscription order. A
    handler that raises is counted and passed to ``on_error``; the
    exception never reaches the publisher, since the change the event
    describes has already been committed.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._subscriptions: List[Subscription] = []
        self._sequence = itertools.count()
        self._counts: Counter = Counter()
        self._lock = threading.RLock()
        self._on_error = on_error or _log_handler_error

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[EventFilter] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator registering a handler. No event types means every event.
        """
        def register(handler: EventHandler) -> EventHandler:
            with self._lock:
                self._subscriptions.append(Subscription(
                    handler=handler,
                    event_types=frozenset(event_types or (Event,)),
                    priority=priority,
                    sequence=next(self._sequence),
                    filter_func=filter_func,
                ))
                self._subscriptions.sort(key=lambda s: s.sort_key)
            return handler
        return register

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Remove every subscription of ``handler``; False if there was none."""
        with self._lock:
            kept = [s for s in self._subscriptions if s.handler != handler]
            removed = len(kept) != len(self._subscriptions)
            self._subscriptions = kept
        return removed

    def publish(self, event: Event) -> int:
        """Deliver ``event``; returns how many handlers it was delivered to."""
        with self._lock:
            self._counts["published"] += 1
            targets = [s for s in self._subscriptions if s.matches(event)]

        for subscription in targets:
            try:
                subscription.handler(event)
            except Exception as e:
                with self._lock:
                    self._counts["errors"] += 1
                self._on_error(EventHandlerError(event, subscription.handler, e))
            else:
                with self._lock:
                    self._counts["handled"] += 1
        return len(targets)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._counts["published"],
                "handled_count": self._counts["handled"],
                "error_count": self._counts["errors"],
                "handler_count": len(self._subscriptions),
            }


class EventLog:
    """Records events published on a bus, in delivery order."""

    def __init__(self, bus: EventBus, *event_types: Type[Event]):
        self._events: List[Event] = []
        self._lock = threading.Lock()
        bus.subscribe(*event_types)(self._append)

    def _append(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: Type[Event]) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


# ════════════════════════════════════════════════════════════════════════════
# GLOBAL INSTANCE
# ════════════════════════════════════════════════════════════════════════════


_event_bus: Optional[EventBus] = None
_event_bus_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Process-wide bus used when a component is not given one."""
    global _event_bus
    with _event_bus_lock:
        if _event_bus is None:
            _event_bus = EventBus()
        return _event_bus


__all__ = [
    "Event",
    "EventHandler",
    "EventHandlerError",
    "Subscription",
    "TokenMinted",
    "MintFailed",
    "RootTransitioned",
    "EventBus",
    "EventLog",
    "get_event_bus",
]
