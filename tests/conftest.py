"""
Shared pytest fixtures for the lifecycle notification bus tests.

These fixtures provide fresh collaborators and reset module-level state
between tests.
"""

import pytest

from lifecycle_bus.dispatcher import SubscriberDispatcher
from lifecycle_bus.event_bus import EventBus, reset_event_bus
from lifecycle_bus.namespaces import reset_namespace_registry
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.listeners import UserDirectory, wire_listeners


@pytest.fixture(autouse=True)
def event_bus() -> EventBus:
    """
    Fresh default event bus for each test.

    Entities broadcast on the default bus, so every test gets a new one.
    """
    return reset_event_bus()


@pytest.fixture(autouse=True)
def namespace_registry():
    """Fresh namespace registry so test-local entity types don't collide."""
    return reset_namespace_registry()


@pytest.fixture
def data_store() -> DataStore:
    """Empty DataStore for each test."""
    return DataStore()


@pytest.fixture
def email_channel() -> EmailChannel:
    """Fresh EmailChannel that never fails."""
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def directory() -> UserDirectory:
    return UserDirectory()


@pytest.fixture
def dispatcher(event_bus: EventBus) -> SubscriberDispatcher:
    return SubscriberDispatcher(event_bus)


@pytest.fixture
def recorded(event_bus: EventBus) -> list:
    """Every user.* and post.* event, in delivery order."""
    events = []
    event_bus.subscribe_namespace("user", events.append)
    event_bus.subscribe_namespace("post", events.append)
    return events


@pytest.fixture
def wired(dispatcher, email_channel, data_store, directory):
    """All example listeners attached to the test's event bus."""
    wire_listeners(dispatcher, email_channel, data_store, directory)
    yield {
        "dispatcher": dispatcher,
        "channel": email_channel,
        "data_store": data_store,
        "directory": directory,
    }
    dispatcher.detach_all()
