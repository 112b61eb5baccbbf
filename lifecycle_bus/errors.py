"""
Exceptions raised by the lifecycle notification bus.

Nothing in the core catches these; they propagate to whoever drove the
lifecycle hook or the broadcast, and recovery is the caller's decision.
"""

from typing import Optional


class LifecycleBusError(Exception):
    """Base class for all lifecycle bus errors."""


class NamespaceError(LifecycleBusError, ValueError):
    """A namespace string is malformed (empty, leading/trailing or doubled dots)."""


class NamespaceCollisionError(NamespaceError):
    """
    A namespace is already claimed by an unrelated entity type.

    Event names are plain string prefixes, so two types publishing under the
    same namespace would be indistinguishable to subscribers.

    ``conflict`` is the namespace already claimed: the same as ``namespace``
    for an exact clash, or an enclosing or nested namespace when the two
    overlap.
    """

    def __init__(self, namespace: str, owner: str, claimant: str, conflict: Optional[str] = None):
        self.namespace = namespace
        self.owner = owner
        self.claimant = claimant
        self.conflict = conflict or namespace
        if self.conflict == namespace:
            message = f"Namespace '{namespace}' is already used by {owner}"
        else:
            message = f"Namespace '{namespace}' overlaps '{self.conflict}', which is used by {owner}"
        super().__init__(f"{message}; cannot attach it to {claimant}")


class LifecycleError(LifecycleBusError):
    """An entity was driven through an invalid lifecycle transition."""


class EntityDestroyedError(LifecycleError):
    """A destroyed entity was asked to go through another commit cycle."""


class DispatchError(LifecycleBusError):
    """A subscriber dispatcher was configured with an operation it cannot route."""
