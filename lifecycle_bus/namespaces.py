"""
Namespace validation and ownership.

Namespaces are plain string prefixes with no central authority, so the
registry here is what stops two unrelated entity types from both publishing
"profile.updated" and silently feeding each other's subscribers.
"""

import logging
import threading
from typing import Optional

from lifecycle_bus.errors import NamespaceCollisionError, NamespaceError

logger = logging.getLogger("namespaces")


def validate_namespace(namespace: str) -> str:
    """
    Check that ``namespace`` can be used as an event name prefix.

    Dots are allowed inside a namespace ("billing.invoice") but not at either
    end or doubled, since the separator is what prefix matching relies on.

    Returns:
        The namespace, unchanged

    Raises:
        NamespaceError: If the namespace is empty or malformed
    """
    if not isinstance(namespace, str) or not namespace:
        raise NamespaceError("Namespace must be a non-empty string")
    if namespace.startswith(".") or namespace.endswith(".") or ".." in namespace:
        raise NamespaceError(f"Malformed namespace: '{namespace}'")
    if namespace != namespace.strip() or " " in namespace:
        raise NamespaceError(f"Namespace may not contain whitespace: '{namespace}'")
    return namespace


def _type_label(owner: type) -> str:
    return f"{owner.__module__}.{owner.__qualname__}"


def _same_owner(a: type, b: type) -> bool:
    return _type_label(a) == _type_label(b)


def _related(a: type, b: type) -> bool:
    return _same_owner(a, b) or issubclass(a, b) or issubclass(b, a)


def _overlaps(namespace: str, other: str) -> bool:
    """True if one namespace is nested inside the other."""
    return namespace.startswith(other + ".") or other.startswith(namespace + ".")


class NamespaceRegistry:
    """
    Tracks which entity type owns each namespace.

    A type may re-claim its own namespace (re-attaching replaces the policy)
    and a subclass may claim a namespace its parent owns. A class that is
    redefined under the same module and qualified name (module reload) is
    treated as the same owner.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owners: dict[str, type] = {}

    def claim(self, namespace: str, owner: type) -> None:
        """
        Record ``owner`` as the publisher of ``namespace``.

        A namespace nested inside another ("billing.invoice" inside
        "billing") overlaps it, since subscribers of the outer namespace
        receive the inner one's events. Overlapping namespaces must belong
        to the same type or to types in one class hierarchy.

        Raises:
            NamespaceCollisionError: If an unrelated type already owns it, or
                owns a namespace it overlaps
        """
        validate_namespace(namespace)
        with self._lock:
            current = self._owners.get(namespace)
            if current is not None and not (_same_owner(current, owner) or issubclass(owner, current)):
                raise NamespaceCollisionError(namespace, _type_label(current), _type_label(owner))
            for other, other_owner in self._owners.items():
                if _overlaps(namespace, other) and not _related(owner, other_owner):
                    raise NamespaceCollisionError(
                        namespace, _type_label(other_owner), _type_label(owner), conflict=other
                    )
            if current is None or _same_owner(current, owner):
                self._owners[namespace] = owner
        logger.debug(f"'{namespace}' claimed by {_type_label(owner)}")

    def release(self, namespace: str) -> None:
        with self._lock:
            self._owners.pop(namespace, None)

    def owner_of(self, namespace: str) -> Optional[type]:
        return self._owners.get(namespace)

    def namespaces(self) -> dict[str, str]:
        """Map of namespace -> owning type's qualified name."""
        return {ns: _type_label(owner) for ns, owner in self._owners.items()}


_default_registry: Optional[NamespaceRegistry] = None


def get_namespace_registry() -> NamespaceRegistry:
    """Get the default namespace registry singleton."""
    global _default_registry
    if _default_registry is None:
        _default_registry = NamespaceRegistry()
    return _default_registry


def reset_namespace_registry() -> NamespaceRegistry:
    """Replace the default registry with an empty one (useful for testing)."""
    global _default_registry
    _default_registry = NamespaceRegistry()
    return _default_registry
