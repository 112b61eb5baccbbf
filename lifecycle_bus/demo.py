"""
Demonstration scripts for the lifecycle notification bus.

These functions show entities publishing their lifecycle and listeners
reacting to it. Run them to see notifications queued at pre-commit and
broadcast after each write.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from lifecycle_bus.dispatcher import SubscriberDispatcher
from lifecycle_bus.event_bus import Event, EventBus, reset_event_bus
from lifecycle_bus.publisher import NamespacedPublisher
from shared.channels import EmailChannel
from shared.data_store import DataStore, PersistenceError
from shared.listeners import UserDirectory, wire_listeners
from shared.models import Post, User

logger = logging.getLogger("demo")

RECORDED_NAMESPACES = ("user", "post", "report")


@dataclass
class DemoEnvironment:
    """Everything a scenario needs, wired together on a fresh event bus."""
    event_bus: EventBus
    data_store: DataStore
    channel: EmailChannel
    directory: UserDirectory
    dispatcher: SubscriberDispatcher
    events: list[Event] = field(default_factory=list)

    def event_names(self) -> list[str]:
        return [event.name for event in self.events]


def build_environment(channel: Optional[EmailChannel] = None) -> DemoEnvironment:
    """
    Reset the default event bus and wire the example listeners onto it.

    Entities broadcast on the default bus, so a demo always starts by
    replacing it.
    """
    event_bus = reset_event_bus()
    data_store = DataStore()
    channel = channel or EmailChannel()
    directory = UserDirectory()

    env = DemoEnvironment(
        event_bus=event_bus,
        data_store=data_store,
        channel=channel,
        directory=directory,
        dispatcher=SubscriberDispatcher(event_bus),
    )
    # Record first so the log shows each event before its side effects
    for namespace in RECORDED_NAMESPACES:
        event_bus.subscribe_namespace(namespace, env.events.append)
    wire_listeners(env.dispatcher, channel, data_store, directory)
    return env


# =============================================================================
# Scenarios
# =============================================================================

def user_lifecycle_scenario(env: DemoEnvironment, name: str = "Ada", new_name: str = "Ada L.") -> User:
    """Create a user, rename them, change their email, then delete them."""
    handle = name.strip().lower().replace(" ", ".") or "user"
    user = env.data_store.save(User(name=name, email=f"{handle}@example.com"))

    user.name = new_name
    env.data_store.save(user)

    user.email = user.email.replace("@example.com", "@example.org")
    env.data_store.save(user)

    # Saving with nothing changed publishes nothing
    env.data_store.save(user)

    env.data_store.destroy(user)
    return user


def author_sync_scenario(env: DemoEnvironment, new_name: str = "Grace B. Hopper") -> User:
    """Create a user with two posts, then rename the user."""
    user = env.data_store.save(User(name="Grace", email="grace@example.com"))
    env.data_store.save(Post(user_id=user.id, title="On compilers"))
    env.data_store.save(Post(user_id=user.id, title="Nanoseconds"))

    user.name = new_name
    env.data_store.save(user)
    return user


def failed_write_scenario(env: DemoEnvironment) -> User:
    """A write that fails publishes nothing; the retry publishes once."""
    user = env.data_store.save(User(name="Linus", email="linus@example.com"))

    user.name = "Linus T."
    env.data_store.fail_next_write("disk full")
    try:
        env.data_store.save(user)
    except PersistenceError as exc:
        logger.warning(f"Write failed, nothing was broadcast: {exc}")

    env.data_store.save(user)
    return user


def instrumentation_scenario(env: DemoEnvironment) -> Optional[str]:
    """
    Time two units of work with the timed broadcast form; the second fails.

    Returns:
        The first unit of work's result
    """
    publisher = NamespacedPublisher("report", env.event_bus)
    result = publisher.broadcast("render", {"report": "monthly"}, lambda: "rendered")

    def broken_export():
        raise RuntimeError("exporter offline")

    try:
        publisher.broadcast("export", {"report": "monthly"}, broken_export)
    except RuntimeError as exc:
        logger.warning(f"Export failed after its event was published: {exc}")
    return result


# =============================================================================
# Narrated demos
# =============================================================================

def _print_header(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70 + "\n")


def _print_results(env: DemoEnvironment) -> None:
    print("\n" + "-" * 70)
    print("Events broadcast:")
    for event in env.events:
        print(f"  {event}")
    print("\nMail sent:")
    for msg in env.channel.sent_messages:
        print(f"  {msg}")
    print("-" * 70)


def run_user_lifecycle_demo():
    """
    Demonstrate create / rename / email change / delete for one user.

    The User model only publishes. Mail and the name cache are handled by
    listeners it doesn't know about.
    """
    _print_header("LIFECYCLE DEMO: User create, rename, delete")
    env = build_environment()
    user_lifecycle_scenario(env)
    _print_results(env)


def run_author_sync_demo():
    """Demonstrate a rename propagating to the user's posts through a listener."""
    _print_header("LIFECYCLE DEMO: Author name propagation")
    env = build_environment()
    user = author_sync_scenario(env)
    _print_results(env)
    print("\nPosts after rename:")
    for post in env.data_store.posts_by_user(user.id):
        print(f"  #{post.id} '{post.title}' by {post.author_name}")


def run_failed_write_demo():
    """Demonstrate that a failed write never broadcasts its queued notifications."""
    _print_header("LIFECYCLE DEMO: Failed write")
    env = build_environment()
    failed_write_scenario(env)
    _print_results(env)


def run_instrumentation_demo():
    """Demonstrate timed broadcasts, including one whose body fails."""
    _print_header("LIFECYCLE DEMO: Timed broadcasts")
    env = build_environment()
    instrumentation_scenario(env)
    _print_results(env)


DEMOS = {
    "user-lifecycle": run_user_lifecycle_demo,
    "author-sync": run_author_sync_demo,
    "failed-write": run_failed_write_demo,
    "instrumentation": run_instrumentation_demo,
}


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


if __name__ == "__main__":
    configure_logging()
    for demo in DEMOS.values():
        demo()
