"""
In-process event bus for lifecycle notifications.

This module provides the name-keyed pub/sub primitive everything else is built
on. It knows nothing about entities, namespaces-as-producers, or commit cycles:
it matches event names against subscription patterns and calls handlers.

Design decisions:
- Synchronous delivery on the calling thread, in registration order
- A pattern matches an event name exactly, or as a namespace prefix
  ("user" matches "user.created" but not "users.created")
- Registration order is a single global order shared by all patterns
- Handler failures propagate to the publisher; nothing is swallowed
- No event history: events are discarded once every handler has run
- Copy-on-write subscription list, so publish never holds the lock

The timed form of publish wraps a unit of work: it measures how long the body
ran, publishes exactly one event carrying the duration (and the error, if the
body raised), then hands the body's result or failure back to the caller.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, TypeVar
from uuid import uuid4

logger = logging.getLogger("event_bus")

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def describe_error(exc: BaseException) -> str:
    """Format an exception the way it is recorded on an event's ``error`` field."""
    return f"{type(exc).__name__}: {exc}"


@dataclass(frozen=True)
class Event:
    """
    An immutable record of something that was broadcast on the bus.

    Attributes:
        name: Full event name, e.g. "user.name_changed"
        payload: Event data; lifecycle events carry the entity under "entity"
        timestamp: When the event was created (UTC)
        duration: Seconds spent in the wrapped body (timed publishes only)
        error: "ExceptionType: message" if the wrapped body raised
        exception: The exception the wrapped body raised, if any
        event_id: Unique identifier for this event instance
    """
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    duration: Optional[float] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)
    event_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        # Detach from the caller's dict so later mutation can't leak in.
        object.__setattr__(self, "payload", dict(self.payload or {}))

    @property
    def namespace(self) -> Optional[str]:
        """Everything before the last separator, or None for a bare name."""
        namespace, sep, _ = self.name.rpartition(".")
        return namespace if sep else None

    @property
    def local_name(self) -> str:
        """The last segment of the name (the name without its namespace)."""
        return self.name.rpartition(".")[2]

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __str__(self) -> str:
        parts = [self.name, f"id={self.event_id[:8]}"]
        if self.duration is not None:
            parts.append(f"duration={self.duration * 1000:.2f}ms")
        if self.error is not None:
            parts.append(f"error={self.error}")
        return f"Event({', '.join(parts)})"


EventHandler = Callable[[Event], Any]


@dataclass(frozen=True, eq=False)
class Subscription:
    """
    A registered (pattern, handler) pair.

    Returned by ``EventBus.subscribe`` and used as the handle for
    ``EventBus.unsubscribe``. Subscriptions compare by identity, so the same
    handler registered twice yields two independent subscriptions.

    A ``namespace_only`` subscription matches names under the pattern but
    not the pattern itself: "user" receives "user.created", never "user".
    An ``exact`` subscription matches the pattern itself and nothing under it.
    """
    pattern: str
    handler: EventHandler
    namespace_only: bool = False
    exact: bool = False

    def matches(self, name: str) -> bool:
        """True if this subscription should receive an event called ``name``."""
        if self.exact:
            return name == self.pattern
        if name == self.pattern:
            return not self.namespace_only
        return name.startswith(self.pattern + ".")


class EventBus:
    """
    Synchronous in-memory event bus with exact and namespace-prefix matching.

    Example usage:
        bus = EventBus()

        def on_user_event(event):
            print(f"Received {event.name}")

        handle = bus.subscribe("user", on_user_event)
        bus.publish("user.created", {"id": 1})      # delivered
        bus.publish("users.created", {"id": 1})     # not delivered

        total = bus.publish("report.render", {}, lambda: render_report())

        bus.unsubscribe(handle)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: tuple[Subscription, ...] = ()

    def subscribe(self, pattern: str, handler: EventHandler, exact: bool = False) -> Subscription:
        """
        Subscribe a handler to an event name or namespace.

        Args:
            pattern: Exact event name ("user.created") or namespace ("user")
            handler: Called with the Event for every matching publish
            exact: Only deliver events named exactly ``pattern``, not the
                names nested under it ("billing.invoice" but not
                "billing.invoice.created")

        Returns:
            The Subscription, which is the handle for unsubscribe()
        """
        return self._add(Subscription(pattern=pattern, handler=handler, exact=exact))

    def subscribe_namespace(self, namespace: str, handler: EventHandler) -> Subscription:
        """
        Subscribe a handler to every event under ``namespace``.

        Unlike ``subscribe``, an event named exactly ``namespace`` is not
        delivered; only "<namespace>.<anything>" is.
        """
        return self._add(Subscription(pattern=namespace, handler=handler, namespace_only=True))

    def _add(self, subscription: Subscription) -> Subscription:
        if not subscription.pattern:
            raise ValueError("Subscription pattern must be a non-empty string")
        with self._lock:
            self._subscriptions = self._subscriptions + (subscription,)
        logger.debug(f"Subscribed handler to '{subscription.pattern}'")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """
        Remove a subscription. Removing one that is already gone is a no-op.
        """
        with self._lock:
            remaining = tuple(s for s in self._subscriptions if s is not subscription)
            removed = len(remaining) != len(self._subscriptions)
            self._subscriptions = remaining
        if removed:
            logger.debug(f"Unsubscribed handler from '{subscription.pattern}'")

    @contextmanager
    def subscribed(self, pattern: str, handler: EventHandler) -> Iterator[Subscription]:
        """
        Subscribe for the duration of a ``with`` block.

        Example:
            with bus.subscribed("user", events.append):
                store.save(user)
        """
        subscription = self.subscribe(pattern, handler)
        try:
            yield subscription
        finally:
            self.unsubscribe(subscription)

    def publish(
        self,
        name: str,
        payload: Optional[dict[str, Any]] = None,
        body: Optional[Callable[[], T]] = None,
    ) -> Optional[T]:
        """
        Publish an event to every matching subscription.

        Without ``body`` the event is delivered immediately and None is
        returned. With ``body``, the body runs first and the published event
        carries its duration; if the body raises (any BaseException, so an
        interrupted body is still reported), the event also carries the
        error and the body's exception is re-raised after delivery, even if
        a subscriber fails on the error event.

        Args:
            name: Full event name
            payload: Event data
            body: Optional zero-argument unit of work to time

        Returns:
            The body's return value, or None when there is no body

        Note: handlers run synchronously in registration order. A failing
        handler stops delivery for this publish and its exception propagates.
        """
        if body is None:
            self._deliver(Event(name=name, payload=payload or {}))
            return None

        started = time.perf_counter()
        try:
            result = body()
        except BaseException as exc:
            failure = Event(
                name=name,
                payload=payload or {},
                duration=time.perf_counter() - started,
                error=describe_error(exc),
                exception=exc,
            )
            # The body's failure is what the caller gets; a subscriber failing
            # on the error event is only logged.
            try:
                self._deliver(failure)
            except Exception as listener_exc:
                logger.error(
                    f"Subscriber failed on {failure}: {describe_error(listener_exc)}"
                )
            raise
        self._deliver(Event(
            name=name,
            payload=payload or {},
            duration=time.perf_counter() - started,
        ))
        return result

    def _deliver(self, event: Event) -> int:
        matching = [s for s in self._subscriptions if s.matches(event.name)]
        if not matching:
            logger.debug(f"No subscribers for {event}")
            return 0

        logger.info(f"Publishing: {event} to {len(matching)} subscriber(s)")
        for subscription in matching:
            subscription.handler(event)
        return len(matching)

    def has_subscribers(self, name: str) -> bool:
        """True if publishing ``name`` would reach at least one handler."""
        return any(s.matches(name) for s in self._subscriptions)

    def get_subscriber_count(self, name: str) -> int:
        """Number of subscriptions that would receive an event called ``name``."""
        return sum(1 for s in self._subscriptions if s.matches(name))

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        """Snapshot of all subscriptions in registration order."""
        return self._subscriptions

    def clear_subscribers(self) -> None:
        """Remove all subscriptions (useful for testing)."""
        with self._lock:
            self._subscriptions = ()


# Module-level default bus
# Pass an explicit EventBus where isolation matters (tests, demos)
_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the default event bus singleton."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> EventBus:
    """Replace the default event bus with a fresh one (useful for testing)."""
    global _default_bus
    _default_bus = EventBus()
    return _default_bus
