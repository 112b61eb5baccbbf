"""Per-entity buffer of notifications waiting for a commit to succeed."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger("notification_queue")


@dataclass(frozen=True)
class QueuedNotification:
    """A notification captured at pre-commit, broadcast at post-commit."""
    local_name: str
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationQueue:
    """
    Pending notifications for one entity instance, keyed by namespace.

    Entries are kept in enqueue order and never de-duplicated: enqueuing the
    same name twice broadcasts it twice.
    """

    def __init__(self):
        self._pending: dict[str, list[QueuedNotification]] = {}

    def reset(self, namespace: Optional[str] = None) -> None:
        """Discard pending entries for ``namespace``, or for every namespace."""
        if namespace is None:
            self._pending.clear()
        else:
            self._pending.pop(namespace, None)

    def enqueue(self, namespace: str, local_name: str, payload: Optional[dict[str, Any]] = None) -> None:
        self._pending.setdefault(namespace, []).append(
            QueuedNotification(local_name=local_name, payload=dict(payload or {}))
        )
        logger.debug(f"Queued '{namespace}.{local_name}'")

    def drain(self, namespace: str) -> list[QueuedNotification]:
        """Return and clear the entries for ``namespace``; other namespaces are untouched."""
        return self._pending.pop(namespace, [])

    def pending(self, namespace: str) -> tuple[QueuedNotification, ...]:
        """Peek at the entries for ``namespace`` without clearing them."""
        return tuple(self._pending.get(namespace, ()))

    def namespaces(self) -> list[str]:
        """Namespaces that currently have pending entries."""
        return [ns for ns, entries in self._pending.items() if entries]

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._pending.values())

    def __repr__(self) -> str:
        counts = {ns: len(entries) for ns, entries in self._pending.items()}
        return f"NotificationQueue({counts})"
