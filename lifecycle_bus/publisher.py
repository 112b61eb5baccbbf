"""
Namespaced publishing on top of the event bus.

A NamespacedPublisher prefixes every local event name with a fixed namespace,
so unrelated producers can both broadcast "created" without colliding:
"user.created" and "post.created" reach different subscribers.
"""

import logging
from typing import Any, Callable, Optional, TypeVar

from lifecycle_bus.event_bus import EventBus, get_event_bus

logger = logging.getLogger("namespaced_publisher")

T = TypeVar("T")


class NamespacedPublisher:
    """
    Broadcasts local event names under a namespace.

    The publisher holds nothing but its namespace (and optionally a bus), so
    creating one per broadcast is cheap and many may share a namespace.

    Example:
        publisher = NamespacedPublisher("user")
        publisher.broadcast("created", {"entity": user})   # -> "user.created"
    """

    def __init__(self, namespace: Optional[str] = None, event_bus: Optional[EventBus] = None):
        """
        Args:
            namespace: Prefix for every broadcast; None or "" publishes bare names
            event_bus: Bus to publish on (defaults to the singleton at broadcast time)
        """
        self.namespace = namespace or None
        self._event_bus = event_bus

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    def event_name(self, local_name: str) -> str:
        """Compose the full event name for ``local_name``."""
        if self.namespace is None:
            return local_name
        return f"{self.namespace}.{local_name}"

    def broadcast(
        self,
        local_name: str,
        payload: Optional[dict[str, Any]] = None,
        body: Optional[Callable[[], T]] = None,
    ) -> Optional[T]:
        """
        Publish ``local_name`` under this publisher's namespace.

        With ``body``, uses the bus's timed form and returns the body's result.
        """
        name = self.event_name(local_name)
        logger.debug(f"Broadcasting '{name}'")
        return self.event_bus.publish(name, payload, body)

    def __repr__(self) -> str:
        return f"NamespacedPublisher(namespace={self.namespace!r})"
