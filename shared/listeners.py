"""
Example listeners reacting to entity lifecycle events.

Each listener produces one kind of side effect the entities themselves know
nothing about:
- UserMailer: account mail (welcome, name/email change, account closed)
- UserDirectoryCache: keeps a name lookup cache in step with users
- AuthorNameSync: copies a user's name onto the user's posts
- PostAuthorFill: fills in the author name when a post is created

Listeners are attached through a SubscriberDispatcher, which builds a fresh
instance for every event. Anything that must outlive one event (the mail
channel, the store, the cache) is passed in through the factory.

Key insight for the demo:
- User.save() doesn't send mail or touch posts; it only publishes
- Adding a new side effect = adding a new listener and attaching it
"""

import logging
from functools import partial
from typing import Optional

from lifecycle_bus.dispatcher import SubscriberDispatcher, Subscriber
from lifecycle_bus.event_bus import Event
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.models import Post, User
from shared.templates import MailType, render_mail

logger = logging.getLogger("listeners")


class UserMailer(Subscriber):
    """Sends account mail for user lifecycle events."""
    operations = ("created", "name_changed", "email_changed", "destroyed")

    def __init__(self, channel: EmailChannel):
        self.channel = channel

    def created(self, event: Event) -> None:
        user: User = event.payload["entity"]
        subject, body = render_mail(MailType.WELCOME, name=user.name, email=user.email)
        self.channel.send(user.email, subject, body)

    def name_changed(self, event: Event) -> None:
        user: User = event.payload["entity"]
        changes = event.payload["changes"]
        subject, body = render_mail(
            MailType.NAME_CHANGED,
            old_name=changes["old"],
            new_name=changes["new"],
        )
        self.channel.send(user.email, subject, body)

    def email_changed(self, event: Event) -> None:
        # Sent to the old address, so the owner hears about it even if the
        # change wasn't theirs.
        user: User = event.payload["entity"]
        changes = event.payload["changes"]
        subject, body = render_mail(
            MailType.EMAIL_CHANGED,
            name=user.name,
            old_email=changes["old"],
            new_email=changes["new"],
        )
        self.channel.send(changes["old"], subject, body)

    def destroyed(self, event: Event) -> None:
        user: User = event.payload["entity"]
        subject, body = render_mail(MailType.ACCOUNT_CLOSED, name=user.name)
        self.channel.send(user.email, subject, body)


class UserDirectory:
    """A user id -> display name cache, kept in sync by UserDirectoryCache."""

    def __init__(self):
        self._names: dict[int, str] = {}

    def put(self, user_id: int, name: str) -> None:
        self._names[user_id] = name

    def evict(self, user_id: int) -> None:
        self._names.pop(user_id, None)

    def get(self, user_id: int) -> Optional[str]:
        return self._names.get(user_id)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._names


class UserDirectoryCache(Subscriber):
    """Mirrors user names into a UserDirectory."""
    operations = ("created", "name_changed", "destroyed")

    def __init__(self, directory: UserDirectory):
        self.directory = directory

    def created(self, event: Event) -> None:
        user: User = event.payload["entity"]
        self.directory.put(user.id, user.name)

    def name_changed(self, event: Event) -> None:
        user: User = event.payload["entity"]
        self.directory.put(user.id, event.payload["changes"]["new"])

    def destroyed(self, event: Event) -> None:
        self.directory.evict(event.payload["entity"].id)


class AuthorNameSync(Subscriber):
    """
    Propagates a user's name onto the denormalized ``author_name`` of their posts.

    Each post is saved through the data store, so post listeners see the
    update like any other write.
    """
    operations = ("name_changed", "destroyed")

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def name_changed(self, event: Event) -> None:
        user: User = event.payload["entity"]
        new_name = event.payload["changes"]["new"]
        posts = self.data_store.posts_by_user(user.id)
        for post in posts:
            post.author_name = new_name
            self.data_store.save(post)
        logger.info(f"Renamed author on {len(posts)} post(s) for user {user.id}")

    def destroyed(self, event: Event) -> None:
        user: User = event.payload["entity"]
        for post in self.data_store.posts_by_user(user.id):
            post.author_name = None
            self.data_store.save(post)


class PostAuthorFill(Subscriber):
    """Copies the author's current name onto a newly created post."""
    operations = ("created",)

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    def created(self, event: Event) -> None:
        post: Post = event.payload["entity"]
        author = self.data_store.get(User, post.user_id)
        if author is None:
            logger.warning(f"Post {post.id} refers to unknown user {post.user_id}")
            return
        if post.author_name != author.name:
            post.author_name = author.name
            self.data_store.save(post)


def wire_listeners(
    dispatcher: SubscriberDispatcher,
    channel: EmailChannel,
    data_store: DataStore,
    directory: Optional[UserDirectory] = None,
) -> SubscriberDispatcher:
    """
    Attach every example listener to its namespace.

    Returns:
        The dispatcher, for chaining
    """
    dispatcher.attach_to("user", partial(UserMailer, channel))
    dispatcher.attach_to("user", partial(AuthorNameSync, data_store))
    if directory is not None:
        dispatcher.attach_to("user", partial(UserDirectoryCache, directory))
    dispatcher.attach_to("post", partial(PostAuthorFill, data_store))
    return dispatcher
