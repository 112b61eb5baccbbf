"""
Lifecycle-triggered notification bus.

Entities publish what happened to them (created, field changed, destroyed)
under a namespace; listeners subscribe and produce side effects. The pieces:
- EventBus: synchronous name/namespace pub/sub
- NamespacedPublisher: broadcasts local names under a namespace
- SubscriberDispatcher: routes a namespace's events to handler methods
- NotificationQueue: holds an entity's notifications until its write commits
- LifecycleAdapter: drives the queue from pre-commit, post-commit and
  post-destroy hooks
"""

from lifecycle_bus.errors import (
    DispatchError,
    EntityDestroyedError,
    LifecycleBusError,
    LifecycleError,
    NamespaceCollisionError,
    NamespaceError,
)
from lifecycle_bus.event_bus import Event, EventBus, Subscription, get_event_bus, reset_event_bus
from lifecycle_bus.publisher import NamespacedPublisher
from lifecycle_bus.dispatcher import Subscriber, SubscriberDispatcher
from lifecycle_bus.notification_queue import NotificationQueue, QueuedNotification
from lifecycle_bus.namespaces import (
    NamespaceRegistry,
    get_namespace_registry,
    reset_namespace_registry,
    validate_namespace,
)
from lifecycle_bus.policies import (
    CallbackPolicy,
    EntitySnapshot,
    FieldChangePolicy,
    PublisherPolicy,
    TrackedEntity,
)
from lifecycle_bus.lifecycle import (
    Attachment,
    LifecycleAdapter,
    Phase,
    lifecycle_adapter,
    publishes,
)

__all__ = [
    "Attachment",
    "CallbackPolicy",
    "DispatchError",
    "EntityDestroyedError",
    "EntitySnapshot",
    "Event",
    "EventBus",
    "FieldChangePolicy",
    "LifecycleAdapter",
    "LifecycleBusError",
    "LifecycleError",
    "NamespaceCollisionError",
    "NamespaceError",
    "NamespaceRegistry",
    "NamespacedPublisher",
    "NotificationQueue",
    "Phase",
    "PublisherPolicy",
    "QueuedNotification",
    "Subscriber",
    "SubscriberDispatcher",
    "Subscription",
    "TrackedEntity",
    "get_event_bus",
    "get_namespace_registry",
    "lifecycle_adapter",
    "publishes",
    "reset_event_bus",
    "reset_namespace_registry",
    "validate_namespace",
]
