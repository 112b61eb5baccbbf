"""
Tests for the event bus.

These tests verify name and namespace matching, delivery order, failure
propagation and the timed publish form.
"""

import dataclasses
import threading

import pytest

from lifecycle_bus.event_bus import Event, EventBus, get_event_bus, reset_event_bus


class TestEvent:
    """Tests for the Event record."""

    def test_create_event(self):
        """Test basic event creation."""
        event = Event(name="user.created", payload={"key": "value"})

        assert event.name == "user.created"
        assert event.payload == {"key": "value"}
        assert event.timestamp is not None
        assert event.duration is None
        assert event.error is None
        assert event.failed is False

    def test_event_is_immutable(self):
        event = Event(name="user.created")

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.name = "user.destroyed"

    def test_payload_is_copied(self):
        """Mutating the caller's dict after construction doesn't change the event."""
        payload = {"a": 1}
        event = Event(name="x", payload=payload)
        payload["a"] = 2

        assert event.payload == {"a": 1}

    def test_namespace_and_local_name(self):
        event = Event(name="billing.invoice.paid")

        assert event.namespace == "billing.invoice"
        assert event.local_name == "paid"

    def test_bare_name_has_no_namespace(self):
        event = Event(name="tick")

        assert event.namespace is None
        assert event.local_name == "tick"

    def test_event_ids_are_unique(self):
        assert Event(name="x").event_id != Event(name="x").event_id

    def test_event_str(self):
        event = Event(name="report.render", duration=0.5, error="ValueError: boom")

        text = str(event)
        assert "report.render" in text
        assert "500.00ms" in text
        assert "ValueError: boom" in text


class TestEventBusMatching:
    """Tests for which subscriptions receive which events."""

    @pytest.fixture
    def bus(self):
        """Create a fresh event bus for each test."""
        return EventBus()

    def test_exact_name_subscription(self, bus: EventBus):
        received = []
        bus.subscribe("user.created", received.append)

        bus.publish("user.created", {"id": 1})
        bus.publish("user.destroyed", {"id": 1})

        assert [e.name for e in received] == ["user.created"]
        assert received[0].payload == {"id": 1}

    def test_prefix_subscription_requires_separator(self, bus: EventBus):
        """A "user" pattern gets user.* but not users.*."""
        received = []
        bus.subscribe("user", received.append)

        bus.publish("user.created")
        bus.publish("user.name_changed")
        bus.publish("users.created")
        bus.publish("username")

        assert [e.name for e in received] == ["user.created", "user.name_changed"]

    def test_pattern_matches_its_own_name(self, bus: EventBus):
        received = []
        bus.subscribe("user", received.append)

        bus.publish("user")

        assert [e.name for e in received] == ["user"]

    def test_namespace_subscription_excludes_bare_namespace(self, bus: EventBus):
        """A namespace subscription gets user.created, not "user" or "users.created"."""
        received = []
        bus.subscribe_namespace("user", received.append)

        bus.publish("user.created")
        bus.publish("user.name_changed")
        bus.publish("users.created")
        bus.publish("user")

        assert [e.name for e in received] == ["user.created", "user.name_changed"]

    def test_nested_namespace_prefix(self, bus: EventBus):
        received = []
        bus.subscribe("billing", received.append)

        bus.publish("billing.invoice.paid")

        assert len(received) == 1

    def test_exact_subscription_ignores_nested_names(self, bus: EventBus):
        """An exact subscription to "billing.invoice" is not a namespace."""
        received = []
        bus.subscribe("billing.invoice", received.append, exact=True)

        bus.publish("billing.invoice.created")
        bus.publish("billing.invoices")
        bus.publish("billing.invoice")

        assert [e.name for e in received] == ["billing.invoice"]
        assert bus.get_subscriber_count("billing.invoice.created") == 0

    def test_no_subscribers_is_silent(self, bus: EventBus):
        assert bus.publish("nobody.listens", {"x": 1}) is None

    def test_empty_pattern_rejected(self, bus: EventBus):
        with pytest.raises(ValueError):
            bus.subscribe("", lambda e: None)


class TestEventBusDelivery:
    """Tests for delivery order, counts and failures."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_each_subscription_invoked_once(self, bus: EventBus):
        calls = {"exact": 0, "prefix": 0}

        bus.subscribe("user.created", lambda e: calls.__setitem__("exact", calls["exact"] + 1))
        bus.subscribe("user", lambda e: calls.__setitem__("prefix", calls["prefix"] + 1))

        bus.publish("user.created")

        assert calls == {"exact": 1, "prefix": 1}

    def test_registration_order_is_global_across_patterns(self, bus: EventBus):
        """Exact and prefix subscriptions fire in one registration order."""
        order = []
        bus.subscribe("user.created", lambda e: order.append("exact-1"))
        bus.subscribe("user", lambda e: order.append("prefix"))
        bus.subscribe("user.created", lambda e: order.append("exact-2"))

        bus.publish("user.created")

        assert order == ["exact-1", "prefix", "exact-2"]

    def test_same_handler_twice_is_called_twice(self, bus: EventBus):
        received = []
        bus.subscribe("x", received.append)
        bus.subscribe("x", received.append)

        bus.publish("x")

        assert len(received) == 2

    def test_handler_failure_propagates_and_halts_delivery(self, bus: EventBus):
        """A failing handler stops later handlers for this publish only."""
        results = []

        def bad_handler(event):
            raise ValueError("I'm broken!")

        bus.subscribe("x", results.append)
        bus.subscribe("x", bad_handler)
        bus.subscribe("x", lambda e: results.append("after"))

        with pytest.raises(ValueError, match="broken"):
            bus.publish("x")

        assert len(results) == 1
        assert "after" not in results

    def test_subscribing_during_publish_does_not_affect_current_delivery(self, bus: EventBus):
        late = []

        def subscribes_another(event):
            bus.subscribe("x", late.append)

        bus.subscribe("x", subscribes_another)

        bus.publish("x")
        assert late == []

        bus.publish("x")
        assert len(late) == 1


class TestEventBusUnsubscribe:
    """Tests for removing subscriptions."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_unsubscribe(self, bus: EventBus):
        received = []
        handle = bus.subscribe("x", received.append)
        bus.publish("x")

        bus.unsubscribe(handle)
        bus.publish("x")

        assert len(received) == 1

    def test_unsubscribe_is_idempotent(self, bus: EventBus):
        handle = bus.subscribe("x", lambda e: None)

        bus.unsubscribe(handle)
        bus.unsubscribe(handle)

        assert bus.get_subscriber_count("x") == 0

    def test_unsubscribe_removes_by_identity(self, bus: EventBus):
        """Removing one of two registrations of the same handler keeps the other."""
        received = []
        first = bus.subscribe("x", received.append)
        bus.subscribe("x", received.append)

        bus.unsubscribe(first)
        bus.publish("x")

        assert len(received) == 1

    def test_subscribed_context_manager(self, bus: EventBus):
        received = []

        with bus.subscribed("x", received.append):
            bus.publish("x")

        bus.publish("x")

        assert len(received) == 1
        assert bus.get_subscriber_count("x") == 0

    def test_subscribed_unsubscribes_on_error(self, bus: EventBus):
        with pytest.raises(RuntimeError):
            with bus.subscribed("x", lambda e: None):
                raise RuntimeError("inside block")

        assert bus.has_subscribers("x") is False

    def test_subscriber_counts(self, bus: EventBus):
        assert bus.get_subscriber_count("user.created") == 0

        bus.subscribe("user", lambda e: None)
        bus.subscribe("user.created", lambda e: None)
        bus.subscribe("post", lambda e: None)

        assert bus.get_subscriber_count("user.created") == 2
        assert bus.get_subscriber_count("user.destroyed") == 1
        assert bus.has_subscribers("post.created") is True
        assert bus.has_subscribers("comment.created") is False

    def test_clear_subscribers(self, bus: EventBus):
        bus.subscribe("x", lambda e: None)

        bus.clear_subscribers()

        assert bus.subscriptions == ()


class TestTimedPublish:
    """Tests for publish with a body to time."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_returns_body_result_and_records_duration(self, bus: EventBus):
        received = []
        bus.subscribe("report", received.append)

        result = bus.publish("report.render", {"id": 7}, lambda: 42)

        assert result == 42
        assert len(received) == 1
        assert received[0].payload == {"id": 7}
        assert received[0].duration is not None
        assert received[0].duration >= 0
        assert received[0].error is None

    def test_body_runs_before_delivery(self, bus: EventBus):
        order = []
        bus.subscribe("job.run", lambda e: order.append("event"))

        bus.publish("job.run", None, lambda: order.append("body"))

        assert order == ["body", "event"]

    def test_failing_body_emits_once_and_reraises(self, bus: EventBus):
        """Exactly one event carries the error; the caller still sees the failure."""
        received = []
        bus.subscribe("report", received.append)
        boom = ValueError("boom")

        def body():
            raise boom

        with pytest.raises(ValueError) as exc_info:
            bus.publish("report.render", {}, body)

        assert exc_info.value is boom
        assert len(received) == 1
        assert received[0].error == "ValueError: boom"
        assert received[0].exception is boom
        assert received[0].failed is True
        assert received[0].duration is not None

    def test_failing_body_without_subscribers_still_raises(self, bus: EventBus):
        def body():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            bus.publish("nobody.listens", None, body)

    def test_subscriber_failing_on_error_event_does_not_mask_body_failure(self, bus: EventBus):
        """The caller gets the body's exception, not the subscriber's."""
        received = []
        bus.subscribe("report", received.append)

        def listener_down(event):
            raise RuntimeError("listener down")

        bus.subscribe("report", listener_down)

        def body():
            raise ValueError("render failed")

        with pytest.raises(ValueError, match="render failed"):
            bus.publish("report.render", {}, body)

        assert len(received) == 1
        assert received[0].error == "ValueError: render failed"

    def test_subscriber_failure_on_success_still_propagates(self, bus: EventBus):
        def listener_down(event):
            raise RuntimeError("listener down")

        bus.subscribe("report", listener_down)

        with pytest.raises(RuntimeError, match="listener down"):
            bus.publish("report.render", {}, lambda: 1)

    def test_base_exception_from_body_is_reported(self, bus: EventBus):
        """Interrupts are not Exceptions but still produce the error event."""

        class Cancelled(BaseException):
            pass

        received = []
        bus.subscribe("job", received.append)

        def body():
            raise Cancelled("stopped by operator")

        with pytest.raises(Cancelled):
            bus.publish("job.run", None, body)

        assert len(received) == 1
        assert received[0].error == "Cancelled: stopped by operator"
        assert isinstance(received[0].exception, Cancelled)


class TestEventBusConcurrency:
    """Publishing and subscribing from different threads."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_publish_while_other_thread_churns_subscriptions(self, bus: EventBus):
        """A steady subscriber sees every event while others come and go."""
        steady = []
        bus.subscribe("tick", lambda e: steady.append(e.payload["n"]))
        errors = []
        done = threading.Event()

        def publish():
            try:
                for n in range(2000):
                    bus.publish("tick.beat", {"n": n})
            except Exception as exc:
                errors.append(exc)
            finally:
                done.set()

        def churn():
            try:
                while not done.is_set():
                    handle = bus.subscribe("tick", lambda e: None)
                    other = bus.subscribe_namespace("tick", lambda e: None)
                    bus.unsubscribe(handle)
                    bus.unsubscribe(other)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=publish), threading.Thread(target=churn)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert steady == list(range(2000))

    def test_concurrent_subscribes_are_all_kept(self, bus: EventBus):
        handles = []

        def subscribe_many():
            for _ in range(200):
                handles.append(bus.subscribe("tick", lambda e: None))

        threads = [threading.Thread(target=subscribe_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(bus.subscriptions) == 1600
        assert bus.get_subscriber_count("tick.beat") == 1600

        for handle in handles:
            bus.unsubscribe(handle)
        assert bus.subscriptions == ()


class TestEventBusSingleton:
    """Tests for the module-level singleton functions."""

    def test_get_event_bus_returns_same_instance(self):
        assert get_event_bus() is get_event_bus()

    def test_reset_event_bus(self):
        bus1 = get_event_bus()
        bus1.subscribe("Test", lambda e: None)

        bus2 = reset_event_bus()

        assert bus2 is not bus1
        assert get_event_bus() is bus2
        assert bus2.get_subscriber_count("Test") == 0
