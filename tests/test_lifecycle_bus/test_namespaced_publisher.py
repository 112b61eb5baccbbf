"""Tests for NamespacedPublisher."""

import pytest

from lifecycle_bus.event_bus import EventBus, reset_event_bus
from lifecycle_bus.publisher import NamespacedPublisher


class TestNamespacedPublisher:

    def test_broadcast_prefixes_namespace(self, event_bus: EventBus):
        received = []
        event_bus.subscribe("user", received.append)

        NamespacedPublisher("user").broadcast("created", {"id": 1})

        assert [e.name for e in received] == ["user.created"]
        assert received[0].payload == {"id": 1}

    def test_event_name(self):
        assert NamespacedPublisher("billing.invoice").event_name("paid") == "billing.invoice.paid"

    @pytest.mark.parametrize("namespace", [None, ""])
    def test_without_namespace_behaves_as_bare_bus(self, event_bus: EventBus, namespace):
        received = []
        event_bus.subscribe("created", received.append)

        NamespacedPublisher(namespace).broadcast("created")

        assert [e.name for e in received] == ["created"]

    def test_publishers_sharing_a_namespace(self, event_bus: EventBus):
        received = []
        event_bus.subscribe("user", received.append)

        NamespacedPublisher("user").broadcast("a")
        NamespacedPublisher("user").broadcast("b")

        assert [e.name for e in received] == ["user.a", "user.b"]

    def test_explicit_bus(self, event_bus: EventBus):
        other = EventBus()
        on_default, on_other = [], []
        event_bus.subscribe("user", on_default.append)
        other.subscribe("user", on_other.append)

        NamespacedPublisher("user", other).broadcast("created")

        assert on_default == []
        assert len(on_other) == 1

    def test_default_bus_resolved_at_broadcast_time(self):
        publisher = NamespacedPublisher("user")
        new_bus = reset_event_bus()
        received = []
        new_bus.subscribe("user", received.append)

        publisher.broadcast("created")

        assert len(received) == 1

    def test_timed_broadcast_returns_result(self, event_bus: EventBus):
        received = []
        event_bus.subscribe("report.render", received.append)

        result = NamespacedPublisher("report").broadcast("render", {"id": 3}, lambda: "done")

        assert result == "done"
        assert received[0].duration is not None

    def test_timed_broadcast_failure(self, event_bus: EventBus):
        """One event with the error is published and the failure propagates."""
        received = []
        event_bus.subscribe("report", received.append)

        def body():
            raise RuntimeError("exporter offline")

        with pytest.raises(RuntimeError, match="exporter offline"):
            NamespacedPublisher("report").broadcast("export", {}, body)

        assert len(received) == 1
        assert received[0].name == "report.export"
        assert received[0].error == "RuntimeError: exporter offline"

    def test_failing_subscriber_does_not_replace_body_failure(self, event_bus: EventBus):
        """A listener that breaks on the error event is not what the caller sees."""
        received = []
        event_bus.subscribe("report", received.append)

        def listener_down(event):
            raise RuntimeError("listener down")

        event_bus.subscribe("report", listener_down)

        def body():
            raise ValueError("bad template")

        with pytest.raises(ValueError, match="bad template"):
            NamespacedPublisher("report").broadcast("render", {}, body)

        assert [e.error for e in received] == ["ValueError: bad template"]
