"""
Tests for the typed event bus and subscription handles.
"""

from live_session.components.events.bus import EventBus, SessionEvent


class TestEventBus:
    """Tests for EventBus."""

    def test_handlers_run_in_registration_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(SessionEvent.NEXT_ACTIVITY, lambda p: calls.append(("first", p)))
        bus.subscribe(SessionEvent.NEXT_ACTIVITY, lambda p: calls.append(("second", p)))

        delivered = bus.publish(SessionEvent.NEXT_ACTIVITY, "q1")

        assert delivered == 2
        assert calls == [("first", "q1"), ("second", "q1")]

    def test_events_are_isolated_by_type(self):
        bus = EventBus()
        calls = []
        bus.subscribe(SessionEvent.SESSION_END, calls.append)

        assert bus.publish(SessionEvent.SESSION_START, "x") == 0
        assert calls == []

    def test_unsubscribe_removes_handler(self):
        bus = EventBus()
        calls = []
        subscription = bus.subscribe(SessionEvent.ERROR, calls.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        bus.publish(SessionEvent.ERROR, "e")

        assert calls == []
        assert not subscription.active
        assert bus.handler_count(SessionEvent.ERROR) == 0

    def test_subscription_as_context_manager(self):
        bus = EventBus()
        calls = []

        with bus.subscribe(SessionEvent.ERROR, calls.append):
            bus.publish(SessionEvent.ERROR, 1)
        bus.publish(SessionEvent.ERROR, 2)

        assert calls == [1]

    def test_same_callback_registered_twice_has_independent_handles(self):
        bus = EventBus()
        calls = []
        first = bus.subscribe(SessionEvent.ERROR, calls.append)
        bus.subscribe(SessionEvent.ERROR, calls.append)

        first.unsubscribe()
        bus.publish(SessionEvent.ERROR, "e")

        assert calls == ["e"]

    def test_handler_added_during_dispatch_runs_next_time(self):
        bus = EventBus()
        calls = []

        def register(payload):
            calls.append("outer")
            bus.subscribe(SessionEvent.ERROR, lambda p: calls.append("inner"))

        bus.subscribe(SessionEvent.ERROR, register)
        bus.publish(SessionEvent.ERROR, None)
        assert calls == ["outer"]

        bus.publish(SessionEvent.ERROR, None)
        assert calls == ["outer", "outer", "inner"]

    def test_handler_removed_during_dispatch_is_skipped(self):
        bus = EventBus()
        calls = []
        handles = {}

        def first(payload):
            calls.append("first")
            handles["second"].unsubscribe()

        bus.subscribe(SessionEvent.ERROR, first)
        handles["second"] = bus.subscribe(SessionEvent.ERROR, lambda p: calls.append("second"))

        bus.publish(SessionEvent.ERROR, None)

        assert calls == ["first"]

    def test_failing_handler_does_not_stop_others(self, caplog):
        bus = EventBus()
        calls = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(SessionEvent.ERROR, broken)
        bus.subscribe(SessionEvent.ERROR, calls.append)

        bus.publish(SessionEvent.ERROR, "e")

        assert calls == ["e"]
        assert "Event handler failed" in caplog.text

    def test_clear(self):
        bus = EventBus()
        subscription = bus.subscribe(SessionEvent.ERROR, lambda p: None)

        bus.clear()
        subscription.unsubscribe()

        assert bus.handler_count() == 0
