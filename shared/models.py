"""
Domain models for the lifecycle notification demo.

These are the stateful entities whose lifecycle drives notifications. They
stand in for the records an ORM would manage: each one remembers the values
it had when it was last persisted, which is what lets a publisher policy ask
"did the name change, and from what?".

Design decisions:
- Using Pydantic for validation and serialization
- Change tracking compares current field values to a snapshot taken by the
  data store after each successful write
- A model that has never been written is a "new record"
- Entities declare what they publish with the @publishes decorator; the
  models themselves never talk to the event bus
"""

from copy import deepcopy
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from lifecycle_bus.lifecycle import publishes
from lifecycle_bus.policies import FieldChangePolicy


class TrackedModel(BaseModel):
    """
    Base model with dirty tracking.

    Provides the mutation-state inspector the lifecycle adapter relies on:
    ``new_record``, ``destroyed``, ``field_changed`` and
    ``prior_and_current_value``.
    """
    id: Optional[int] = Field(default=None, description="Assigned by the data store on first save")

    model_config = ConfigDict(validate_assignment=True)

    _persisted: Optional[dict[str, Any]] = PrivateAttr(default=None)
    _destroyed: bool = PrivateAttr(default=False)
    _lifecycle_state: Any = PrivateAttr(default=None)

    @property
    def new_record(self) -> bool:
        """True until the first successful write."""
        return self._persisted is None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _check_field(self, field: str) -> None:
        if field not in type(self).model_fields:
            raise ValueError(f"{type(self).__name__} has no field '{field}'")

    def prior_and_current_value(self, field: str) -> tuple[Any, Any]:
        """
        The value ``field`` had at the last write, and its value now.

        The prior value of a new record is None.
        """
        self._check_field(field)
        prior = None if self._persisted is None else self._persisted.get(field)
        return prior, getattr(self, field)

    def field_changed(self, field: str) -> bool:
        prior, current = self.prior_and_current_value(field)
        return prior != current

    def changes(self) -> dict[str, tuple[Any, Any]]:
        """Map of changed field -> (prior, current)."""
        return {
            name: self.prior_and_current_value(name)
            for name in type(self).model_fields
            if self.field_changed(name)
        }

    def mark_persisted(self) -> None:
        """Record the current values as the persisted state. Called by the data store."""
        self._persisted = {
            name: deepcopy(getattr(self, name))
            for name in type(self).model_fields
        }

    def mark_destroyed(self) -> None:
        self._destroyed = True


@publishes("user", FieldChangePolicy("name", "email"))
class User(TrackedModel):
    """
    A user account.

    Publishes "user.created", "user.name_changed", "user.email_changed" and
    "user.destroyed". Listeners use these to send mail, keep a name cache in
    sync, and copy the name onto the user's posts.
    """
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., description="Address for account mail")


@publishes("post", FieldChangePolicy("title"))
class Post(TrackedModel):
    """
    A post written by a user.

    ``author_name`` is denormalized from the user; it is kept current by the
    AuthorNameSync listener rather than by the User model.
    """
    user_id: int = Field(..., description="Reference to the author")
    title: str = Field(..., min_length=1)
    author_name: Optional[str] = Field(
        default=None,
        description="Copy of the author's name, maintained by a listener"
    )
