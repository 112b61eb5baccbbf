"""
In-memory data store for the lifecycle notification demo.

This module plays the part of the persistence layer: it is the lifecycle
source that calls the adapter's hooks around each write. A real system would
do the same from its ORM's before-save / after-commit / after-destroy hooks.

Design decisions:
- Identity map: the store keeps the instances it is given, keyed by type and id
- Ids are assigned per type on first save
- Hooks run in the order pre-commit -> write -> post-commit; a failed write
  never reaches post-commit
- A listener failing after a successful write is reported as
  NotificationDeliveryError; the write is not undone or retried
- Storage failures can be simulated for testing
"""

import itertools
import logging
from typing import Optional, TypeVar

from lifecycle_bus.lifecycle import LifecycleAdapter, lifecycle_adapter
from shared.models import Post, TrackedModel

logger = logging.getLogger("data_store")

M = TypeVar("M", bound=TrackedModel)


class PersistenceError(Exception):
    """The write itself failed; no notifications were broadcast."""


class NotificationDeliveryError(Exception):
    """
    The write succeeded but a listener failed while notifications were broadcast.

    Attributes:
        entity: The entity that was written (or destroyed)
        cause: The listener's exception
    """

    def __init__(self, entity: TrackedModel, cause: Exception):
        self.entity = entity
        self.cause = cause
        super().__init__(
            f"{type(entity).__name__} {entity.id} was saved, but a listener failed: {cause}"
        )


class DataStore:
    """
    Stores entities in memory and drives their lifecycle notifications.

    Example:
        store = DataStore()
        user = store.save(User(name="Ada", email="ada@example.com"))  # user.created
        user.name = "Ada L."
        store.save(user)                                               # user.name_changed
        store.destroy(user)                                            # user.destroyed
    """

    def __init__(self):
        self._tables: dict[type, dict[int, TrackedModel]] = {}
        self._id_sequences: dict[type, itertools.count] = {}
        self._fail_next_write: Optional[str] = None

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, entity: M) -> M:
        """
        Insert or update an entity.

        Raises:
            PersistenceError: If the entity was destroyed or the write failed
            NotificationDeliveryError: If the write succeeded but a listener failed
            Exception: Whatever a publisher policy raised; the write is not attempted
        """
        if entity.destroyed:
            raise PersistenceError(f"Cannot save destroyed {type(entity).__name__} {entity.id}")

        adapter = lifecycle_adapter(type(entity))
        if adapter is not None:
            adapter.on_pre_commit(entity)

        creating = entity.new_record
        self._write(entity)
        entity.mark_persisted()
        logger.info(f"{'Created' if creating else 'Updated'} {type(entity).__name__} {entity.id}")

        if adapter is not None:
            self._after_commit(adapter, entity, destroyed=False)
        return entity

    def destroy(self, entity: TrackedModel) -> None:
        """
        Remove an entity.

        Raises:
            PersistenceError: If the entity is not stored
            NotificationDeliveryError: If the delete succeeded but a listener failed
        """
        table = self._tables.get(type(entity), {})
        if entity.new_record or table.get(entity.id) is not entity:
            raise PersistenceError(f"{type(entity).__name__} {entity.id} is not stored")

        del table[entity.id]
        entity.mark_destroyed()
        logger.info(f"Destroyed {type(entity).__name__} {entity.id}")

        adapter = lifecycle_adapter(type(entity))
        if adapter is not None:
            self._after_commit(adapter, entity, destroyed=True)

    def _write(self, entity: TrackedModel) -> None:
        if self._fail_next_write is not None:
            reason, self._fail_next_write = self._fail_next_write, None
            logger.error(f"Write failed for {type(entity).__name__}: {reason}")
            raise PersistenceError(reason)

        model = type(entity)
        if entity.id is None:
            sequence = self._id_sequences.setdefault(model, itertools.count(1))
            entity.id = next(sequence)
        self._tables.setdefault(model, {})[entity.id] = entity

    def _after_commit(self, adapter: LifecycleAdapter, entity: TrackedModel, destroyed: bool) -> None:
        try:
            if destroyed:
                adapter.on_post_destroy(entity)
            else:
                adapter.on_post_commit(entity)
        except Exception as exc:
            logger.error(
                f"{type(entity).__name__} {entity.id} was written but a listener failed: {exc}"
            )
            raise NotificationDeliveryError(entity, exc) from exc

    def fail_next_write(self, reason: str = "Simulated storage failure") -> None:
        """Make the next save fail as if the storage engine rejected it."""
        self._fail_next_write = reason

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, model: type[M], entity_id: int) -> Optional[M]:
        return self._tables.get(model, {}).get(entity_id)

    def all(self, model: type[M]) -> list[M]:
        return list(self._tables.get(model, {}).values())

    def count(self, model: type[TrackedModel]) -> int:
        return len(self._tables.get(model, {}))

    def find_by(self, model: type[M], **criteria) -> list[M]:
        """All stored entities of ``model`` whose fields equal ``criteria``."""
        return [
            entity for entity in self.all(model)
            if all(getattr(entity, key) == value for key, value in criteria.items())
        ]

    def posts_by_user(self, user_id: int) -> list[Post]:
        return self.find_by(Post, user_id=user_id)

    def clear(self) -> None:
        """Drop all stored entities (ids keep counting)."""
        self._tables.clear()


# Module-level singleton for convenience
# In tests, create a new DataStore instance
_default_store: Optional[DataStore] = None


def get_data_store() -> DataStore:
    """Get the default data store singleton."""
    global _default_store
    if _default_store is None:
        _default_store = DataStore()
    return _default_store


def reset_data_store() -> DataStore:
    """Replace the default data store with an empty one."""
    global _default_store
    _default_store = DataStore()
    return _default_store
