"""
Routing namespaced events to handler objects.

A SubscriberDispatcher binds a namespace to a handler factory. For each
operation the handler declares, it subscribes to "<namespace>.<operation>"
and, on delivery, builds a fresh handler and calls the matching method with
the Event.

Design decisions:
- The operation table is built once at attach time from an explicit list;
  handlers are never introspected per event
- A fresh handler instance per delivered event, so handlers cannot carry
  state from one event to the next
- Handler failures are not caught; they propagate out of publish

Example:
    class UserMailer(Subscriber):
        operations = ("created", "destroyed")

        def created(self, event):
            ...

        def destroyed(self, event):
            ...

    dispatcher = SubscriberDispatcher(event_bus)
    dispatcher.attach_to("user", UserMailer)
"""

import inspect
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Callable, ClassVar, Optional, Union

from lifecycle_bus.errors import DispatchError
from lifecycle_bus.event_bus import Event, EventBus, Subscription, get_event_bus
from lifecycle_bus.namespaces import validate_namespace

logger = logging.getLogger("subscriber_dispatcher")

HandlerFactory = Callable[[], Any]
Operations = Union[Iterable[str], Mapping[str, str]]


class Subscriber:
    """
    Base class for dispatcher handlers.

    ``operations`` lists the local event names the handler responds to; each
    must be a method taking the Event. Map a local name to a differently named
    method by assigning a dict instead, e.g. ``{"created": "send_welcome"}``.
    """
    operations: ClassVar[Operations] = ()


def _operation_table(operations: Operations) -> dict[str, str]:
    if isinstance(operations, str):
        raise DispatchError("operations must be a collection of names, not a single string")
    if isinstance(operations, Mapping):
        table = dict(operations)
    else:
        table = {name: name for name in operations}
    if not table:
        raise DispatchError("Handler declares no operations to dispatch")
    for local_name in table:
        if not local_name or "." in local_name:
            raise DispatchError(f"Invalid operation name: '{local_name}'")
    return table


class SubscriberDispatcher:
    """
    Attaches handler factories to namespaces on an event bus.

    One dispatcher may attach several factories to the same namespace (a
    mailer and a cache syncer both listening on "user"); attaching the same
    factory to the same namespace again replaces the earlier attachment.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        """
        Args:
            event_bus: Bus to subscribe on (defaults to the singleton)
        """
        self._event_bus = event_bus
        self._attachments: dict[tuple[str, HandlerFactory], tuple[EventBus, list[Subscription]]] = {}

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    def attach_to(
        self,
        namespace: str,
        handler_factory: HandlerFactory,
        operations: Optional[Operations] = None,
    ) -> list[Subscription]:
        """
        Route events under ``namespace`` to handlers built by ``handler_factory``.

        Args:
            namespace: Namespace whose events should be routed
            handler_factory: Zero-argument callable returning a handler; called
                once per delivered event. A class works, as does a
                functools.partial binding constructor arguments.
            operations: Local event names to route (or a local-name -> method
                mapping). Defaults to the factory's ``operations`` attribute.

        Returns:
            The subscriptions registered, one per operation

        Raises:
            DispatchError: If no operations are declared, or the factory is a
                class lacking a declared method
        """
        validate_namespace(namespace)
        # functools.partial(HandlerClass, ...) declares what HandlerClass declares
        handler_class = getattr(handler_factory, "func", handler_factory)
        if operations is None:
            operations = getattr(handler_class, "operations", None)
            if operations is None:
                raise DispatchError(
                    f"{handler_factory!r} has no 'operations'; pass them explicitly"
                )
        table = _operation_table(operations)

        if inspect.isclass(handler_class):
            for local_name, method_name in table.items():
                if not callable(getattr(handler_class, method_name, None)):
                    raise DispatchError(
                        f"{handler_class.__qualname__} has no method '{method_name}' "
                        f"for operation '{local_name}'"
                    )

        key = (namespace, handler_factory)
        if key in self._attachments:
            self._detach(key)

        bus = self.event_bus
        callback = self._make_callback(namespace, handler_factory, table)
        subscriptions = [
            bus.subscribe(f"{namespace}.{local_name}", callback, exact=True)
            for local_name in table
        ]
        self._attachments[key] = (bus, subscriptions)
        logger.info(
            f"Attached {_factory_label(handler_factory)} to '{namespace}' "
            f"for {sorted(table)}"
        )
        return subscriptions

    def detach_from(self, namespace: str) -> int:
        """
        Remove every attachment this dispatcher made under ``namespace``.

        Returns:
            Number of handler factories detached
        """
        keys = [key for key in self._attachments if key[0] == namespace]
        for key in keys:
            self._detach(key)
        return len(keys)

    def detach_all(self) -> None:
        for key in list(self._attachments):
            self._detach(key)

    def attached_namespaces(self) -> list[str]:
        return sorted({namespace for namespace, _ in self._attachments})

    def _detach(self, key: tuple[str, HandlerFactory]) -> None:
        bus, subscriptions = self._attachments.pop(key)
        for subscription in subscriptions:
            bus.unsubscribe(subscription)
        logger.info(f"Detached {_factory_label(key[1])} from '{key[0]}'")

    @staticmethod
    def _make_callback(
        namespace: str,
        handler_factory: HandlerFactory,
        table: dict[str, str],
    ) -> Callable[[Event], None]:
        prefix = namespace + "."

        def dispatch(event: Event) -> None:
            local_name = event.name[len(prefix):]
            method_name = table[local_name]
            handler = handler_factory()
            getattr(handler, method_name)(event)

        return dispatch


def _factory_label(factory: HandlerFactory) -> str:
    target = getattr(factory, "func", factory)
    return getattr(target, "__qualname__", repr(target))
