"""
Reference collaborators for the lifecycle notification bus.

This package contains the pieces the core treats as external:
- Domain models with change tracking (User, Post)
- An in-memory data store that drives the lifecycle hooks
- A mock email channel and account mail templates
- Example listeners (mail, cache sync, cross-entity field propagation)
"""

from shared.models import TrackedModel, User, Post
from shared.data_store import DataStore, PersistenceError, NotificationDeliveryError
from shared.channels import EmailChannel, NotificationResult
from shared.listeners import (
    UserMailer,
    UserDirectory,
    UserDirectoryCache,
    AuthorNameSync,
    PostAuthorFill,
    wire_listeners,
)

__all__ = [
    "TrackedModel",
    "User",
    "Post",
    "DataStore",
    "PersistenceError",
    "NotificationDeliveryError",
    "EmailChannel",
    "NotificationResult",
    "UserMailer",
    "UserDirectory",
    "UserDirectoryCache",
    "AuthorNameSync",
    "PostAuthorFill",
    "wire_listeners",
]
