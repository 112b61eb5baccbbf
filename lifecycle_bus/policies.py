"""
Publisher policies: deciding what to announce before a write happens.

A policy is asked once per namespace at pre-commit, with a snapshot of the
entity as it is about to be written. It inspects what changed and enqueues
zero or more local notifications, which are broadcast only after the write
succeeds.

The mutation-state inspector is whatever the entity provides: the policy
only relies on ``new_record``, ``field_changed(field)`` and
``prior_and_current_value(field)``.
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from lifecycle_bus.errors import LifecycleError
from lifecycle_bus.notification_queue import NotificationQueue


@runtime_checkable
class TrackedEntity(Protocol):
    """What the lifecycle machinery needs to know about an entity."""

    @property
    def new_record(self) -> bool: ...

    @property
    def destroyed(self) -> bool: ...

    def field_changed(self, field: str) -> bool: ...

    def prior_and_current_value(self, field: str) -> tuple[Any, Any]: ...


class EntitySnapshot:
    """
    The view of an entity a policy gets during pre-commit.

    Reads go to the entity's own change tracking; ``enqueue`` writes to the
    entity's notification queue, restricted to the namespace being prepared.
    """

    def __init__(self, entity: Any, namespace: str, queue: NotificationQueue):
        self.entity = entity
        self.namespace = namespace
        self._queue = queue

    @property
    def new_record(self) -> bool:
        return bool(self.entity.new_record)

    def field_changed(self, field: str) -> bool:
        return bool(self.entity.field_changed(field))

    def prior_and_current_value(self, field: str) -> tuple[Any, Any]:
        return self.entity.prior_and_current_value(field)

    def enqueue(self, namespace: str, local_name: str, payload: Optional[dict[str, Any]] = None) -> None:
        """
        Queue a notification for broadcast after the write succeeds.

        Raises:
            LifecycleError: If ``namespace`` is not the one being prepared
        """
        if namespace != self.namespace:
            raise LifecycleError(
                f"Policy for '{self.namespace}' tried to enqueue into '{namespace}'"
            )
        self._queue.enqueue(namespace, local_name, payload)

    def __repr__(self) -> str:
        return f"EntitySnapshot({self.entity!r}, namespace={self.namespace!r})"


class PublisherPolicy:
    """
    Base policy. Enqueues nothing of its own, so an entity attached with the
    bare base class only announces ``created`` and ``destroyed``.
    """

    def prepare(self, namespace: str, snapshot: EntitySnapshot) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FieldChangePolicy(PublisherPolicy):
    """
    Announce changes to tracked fields as ``<field>_changed``.

    The payload is ``{"changes": {"old": prior, "new": current}}``. Changes on
    a record that is being created are not announced unless ``on_create`` is
    set, since ``created`` already covers them.

    Example:
        @publishes("user", FieldChangePolicy("name", "email"))
        class User(TrackedModel):
            ...
    """

    def __init__(self, *fields: str, on_create: bool = False, event_names: Optional[dict[str, str]] = None):
        if not fields:
            raise ValueError("FieldChangePolicy needs at least one field to track")
        self.fields = fields
        self.on_create = on_create
        self.event_names = dict(event_names or {})

    def event_name(self, field: str) -> str:
        return self.event_names.get(field, f"{field}_changed")

    def prepare(self, namespace: str, snapshot: EntitySnapshot) -> None:
        if snapshot.new_record and not self.on_create:
            return
        for field in self.fields:
            if not snapshot.field_changed(field):
                continue
            old, new = snapshot.prior_and_current_value(field)
            snapshot.enqueue(namespace, self.event_name(field), {"changes": {"old": old, "new": new}})

    def __repr__(self) -> str:
        return f"FieldChangePolicy({', '.join(map(repr, self.fields))})"


class CallbackPolicy(PublisherPolicy):
    """Adapts a plain ``prepare(namespace, snapshot)`` function into a policy."""

    def __init__(self, callback: Callable[[str, EntitySnapshot], None]):
        self.callback = callback

    def prepare(self, namespace: str, snapshot: EntitySnapshot) -> None:
        self.callback(namespace, snapshot)

    def __repr__(self) -> str:
        return f"CallbackPolicy({getattr(self.callback, '__qualname__', self.callback)!r})"


def as_policy(policy: Any) -> PublisherPolicy:
    """Accept a policy object, a bare prepare function, or None (the base policy)."""
    if policy is None:
        return PublisherPolicy()
    if isinstance(policy, type):
        raise TypeError(f"Pass a policy instance, not the class {policy.__qualname__}")
    if callable(getattr(policy, "prepare", None)):
        return policy
    if callable(policy):
        return CallbackPolicy(policy)
    raise TypeError(f"Not a publisher policy: {policy!r}")
