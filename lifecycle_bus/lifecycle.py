"""
Binding notification publishing to an entity's commit cycle.

The LifecycleAdapter is what a persistence layer calls into. It owns the
list of (namespace, policy) attachments for one entity type and drives each
instance through the cycle:

    on_pre_commit   reset the namespace's queue, enqueue "created" for a new
                    record, then let the policy enqueue whatever changed
    on_post_commit  drain the queue and broadcast every entry under the
                    namespace, with the entity added to the payload
    on_post_destroy enqueue "destroyed" and broadcast it straight away

Per instance and namespace the phases are:

    UNATTACHED -> ATTACHED -> PREPARED -> FLUSHED (-> PREPARED ...)
                                   \\-> DESTROYED (terminal)

Design decisions:
- Attachments belong to the type and are an immutable tuple; re-attaching
  a namespace swaps in a new tuple rather than mutating the old one
- Queues belong to the instance, created lazily on the first hook call
- Resetting at the start of pre-commit is what stops a reused instance from
  re-emitting a previous cycle's notifications
- Post-commit trusts its caller: it must only be called after a write that
  really happened
- Draining an empty queue is a no-op, so a duplicated post-commit call is
  harmless
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from lifecycle_bus.errors import EntityDestroyedError, LifecycleError
from lifecycle_bus.event_bus import EventBus
from lifecycle_bus.namespaces import NamespaceRegistry, get_namespace_registry, validate_namespace
from lifecycle_bus.notification_queue import NotificationQueue
from lifecycle_bus.policies import EntitySnapshot, PublisherPolicy, as_policy
from lifecycle_bus.publisher import NamespacedPublisher

logger = logging.getLogger("lifecycle")

CREATED = "created"
DESTROYED = "destroyed"

STATE_ATTR = "_lifecycle_state"
ADAPTER_ATTR = "__lifecycle_adapter__"


class Phase(str, Enum):
    """Where an instance is in the commit cycle, per namespace."""
    UNATTACHED = "unattached"
    ATTACHED = "attached"
    PREPARED = "prepared"
    FLUSHED = "flushed"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class Attachment:
    """A namespace and the policy that decides what to publish under it."""
    namespace: str
    policy: PublisherPolicy


@dataclass
class InstanceState:
    """Lifecycle bookkeeping stored on each entity instance."""
    queue: NotificationQueue = field(default_factory=NotificationQueue)
    phases: dict[str, Phase] = field(default_factory=dict)


class LifecycleAdapter:
    """
    Drives notification publishing for every instance of one entity type.

    Usually created through the ``publishes`` decorator rather than directly.

    Example:
        adapter = LifecycleAdapter(User)
        adapter.attach("user", FieldChangePolicy("name"))

        adapter.on_pre_commit(user)     # before the write
        write(user)
        adapter.on_post_commit(user)    # after it succeeded
    """

    def __init__(
        self,
        entity_type: type,
        attachments: tuple[Attachment, ...] = (),
        event_bus: Optional[EventBus] = None,
        registry: Optional[NamespaceRegistry] = None,
    ):
        """
        Args:
            entity_type: The type whose instances this adapter serves
            attachments: Initial attachments (a subclass starts with its parent's)
            event_bus: Bus to broadcast on (defaults to the singleton at flush time)
            registry: Namespace registry (defaults to the singleton at attach time)
        """
        self.entity_type = entity_type
        self._attachments: tuple[Attachment, ...] = tuple(attachments)
        self._event_bus = event_bus
        self._registry = registry

    # =========================================================================
    # Type-level attachment
    # =========================================================================

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return self._attachments

    @property
    def namespaces(self) -> list[str]:
        return [a.namespace for a in self._attachments]

    def attach(self, namespace: str, policy: Any = None) -> Attachment:
        """
        Publish this type's lifecycle under ``namespace`` using ``policy``.

        Attaching a namespace that is already attached replaces its policy in
        place, keeping its position in the flush order.

        Raises:
            NamespaceError: If the namespace is malformed
            NamespaceCollisionError: If an unrelated type already uses it
        """
        validate_namespace(namespace)
        registry = self._registry or get_namespace_registry()
        registry.claim(namespace, self.entity_type)

        attachment = Attachment(namespace=namespace, policy=as_policy(policy))
        if namespace in self.namespaces:
            self._attachments = tuple(
                attachment if a.namespace == namespace else a
                for a in self._attachments
            )
            logger.info(f"Replaced policy for '{namespace}' on {self.entity_type.__name__}")
        else:
            self._attachments = self._attachments + (attachment,)
            logger.info(f"Attached '{namespace}' to {self.entity_type.__name__} with {attachment.policy!r}")
        return attachment

    def policy_for(self, namespace: str) -> PublisherPolicy:
        return self._attachment(namespace).policy

    def _attachment(self, namespace: str) -> Attachment:
        for attachment in self._attachments:
            if attachment.namespace == namespace:
                return attachment
        raise LifecycleError(
            f"'{namespace}' is not attached to {self.entity_type.__name__}"
        )

    def _targets(self, namespace: Optional[str]) -> list[Attachment]:
        if namespace is None:
            return list(self._attachments)
        return [self._attachment(namespace)]

    # =========================================================================
    # Instance-level state
    # =========================================================================

    def _state(self, entity: Any) -> InstanceState:
        state = getattr(entity, STATE_ATTR, None)
        if state is None:
            state = InstanceState()
            try:
                setattr(entity, STATE_ATTR, state)
            except AttributeError as exc:
                raise LifecycleError(
                    f"{type(entity).__name__} instances cannot hold lifecycle state "
                    f"(no writable '{STATE_ATTR}' attribute)"
                ) from exc
        for attachment in self._attachments:
            state.phases.setdefault(attachment.namespace, Phase.ATTACHED)
        return state

    def phase(self, entity: Any, namespace: str) -> Phase:
        """Current phase of ``entity`` for ``namespace``; does not touch the entity."""
        state = getattr(entity, STATE_ATTR, None)
        if state is None:
            return Phase.UNATTACHED
        return state.phases.get(namespace, Phase.UNATTACHED)

    def queue_for(self, entity: Any) -> NotificationQueue:
        """The entity's notification queue, created on first use."""
        return self._state(entity).queue

    # =========================================================================
    # Lifecycle hooks
    # =========================================================================

    def on_pre_commit(self, entity: Any, namespace: Optional[str] = None) -> None:
        """
        Collect notifications for the write that is about to happen.

        Runs for every attached namespace unless one is given. A failing
        policy propagates immediately, which should abort the write.

        Raises:
            EntityDestroyedError: If the entity was already destroyed
        """
        state = self._state(entity)
        for attachment in self._targets(namespace):
            ns = attachment.namespace
            if state.phases[ns] is Phase.DESTROYED:
                raise EntityDestroyedError(
                    f"{type(entity).__name__} was destroyed; it cannot be committed again"
                )
            state.queue.reset(ns)
            if entity.new_record:
                state.queue.enqueue(ns, CREATED)
            attachment.policy.prepare(ns, EntitySnapshot(entity, ns, state.queue))
            state.phases[ns] = Phase.PREPARED
            logger.debug(f"Prepared {len(state.queue.pending(ns))} notification(s) for '{ns}'")

    def on_post_commit(self, entity: Any, namespace: Optional[str] = None) -> None:
        """
        Broadcast what pre-commit collected, now that the write succeeded.

        Calling this twice without a pre-commit in between broadcasts nothing
        the second time. Namespaces of a destroyed entity are skipped.
        """
        state = self._state(entity)
        targets = [
            a for a in self._targets(namespace)
            if state.phases[a.namespace] is not Phase.DESTROYED
        ]
        self._flush_each(entity, state, targets, Phase.FLUSHED)

    def on_post_destroy(self, entity: Any, namespace: Optional[str] = None) -> None:
        """
        Announce that the entity was removed.

        Anything still queued from an uncommitted cycle is discarded first, so
        ``destroyed`` is the only notification broadcast. A second call is a
        no-op.
        """
        state = self._state(entity)
        targets = []
        for attachment in self._targets(namespace):
            ns = attachment.namespace
            if state.phases[ns] is Phase.DESTROYED:
                logger.debug(f"'{ns}' already destroyed for {type(entity).__name__}; skipping")
                continue
            state.queue.reset(ns)
            state.queue.enqueue(ns, DESTROYED)
            targets.append(attachment)
        self._flush_each(entity, state, targets, Phase.DESTROYED)

    def _flush_each(
        self,
        entity: Any,
        state: InstanceState,
        targets: list[Attachment],
        phase: Phase,
    ) -> None:
        # A listener failure in one namespace must not keep the others from
        # flushing; the first failure is re-raised once all have run.
        failures: list[Exception] = []
        for attachment in targets:
            try:
                self._flush(entity, state, attachment.namespace, phase)
            except Exception as exc:
                logger.error(
                    f"Listener failed while flushing '{attachment.namespace}' "
                    f"for {type(entity).__name__}: {exc}"
                )
                failures.append(exc)
        if failures:
            raise failures[0]

    def _flush(self, entity: Any, state: InstanceState, namespace: str, phase: Phase) -> None:
        entries = state.queue.drain(namespace)
        state.phases[namespace] = phase
        if not entries:
            return

        publisher = NamespacedPublisher(namespace, self._event_bus)
        logger.info(f"Flushing {len(entries)} notification(s) under '{namespace}'")
        for entry in entries:
            publisher.broadcast(entry.local_name, {**entry.payload, "entity": entity})

    def __repr__(self) -> str:
        return f"LifecycleAdapter({self.entity_type.__name__}, namespaces={self.namespaces})"


# =============================================================================
# Type registration
# =============================================================================

def lifecycle_adapter(entity_type: type, create: bool = False) -> Optional[LifecycleAdapter]:
    """
    Look up the adapter serving ``entity_type``.

    Subclasses without attachments of their own use their parent's adapter.
    With ``create``, a type gets its own adapter, seeded with a copy of the
    inherited attachments, so attaching on a subclass never affects the parent.
    """
    if not create:
        return getattr(entity_type, ADAPTER_ATTR, None)

    adapter = entity_type.__dict__.get(ADAPTER_ATTR)
    if adapter is None:
        inherited = getattr(entity_type, ADAPTER_ATTR, None)
        adapter = LifecycleAdapter(
            entity_type,
            attachments=inherited.attachments if inherited else (),
        )
        setattr(entity_type, ADAPTER_ATTR, adapter)
    return adapter


def publishes(namespace: str, policy: Any = None) -> Callable[[type], type]:
    """
    Class decorator attaching a namespace and policy to an entity type.

    Stack it to publish under several namespaces; each gets its own queue and
    flushes independently.

    Example:
        @publishes("user", FieldChangePolicy("name"))
        @publishes("audit")
        class User(TrackedModel):
            name: str
    """
    def decorator(entity_type: type) -> type:
        lifecycle_adapter(entity_type, create=True).attach(namespace, policy)
        return entity_type

    return decorator
