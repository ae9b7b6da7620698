"""Tests for Timeline dispatch, error routing and observer ownership."""

import pytest

from queryflow.exceptions import UnhandledErrorEvent, UnknownMomentError
from queryflow.timeline import (
    AddBehavior,
    LogLevel,
    ObserverOwnership,
    ObserverRegistry,
    Timeline,
    broadcast,
    reduce,
    request,
)


class RecordingTimeline(Timeline):
    """Minimal concrete timeline with one moment per dispatch policy."""

    def __init__(self, observers: ObserverRegistry | None = None) -> None:
        super().__init__(
            {"x": broadcast(), "total": reduce(), "first": request()},
            observers,
        )

    def execute(self, *args):
        return self.invoke("x", *args)


class TestSubscribe:
    """Test subscribing through subscribe() and on()."""

    def test_broadcast_calls_in_registration_order(self):
        """Observers of a broadcast moment run in list order with the timeline first."""
        calls = []
        timeline = RecordingTimeline()
        timeline.on("x")(lambda tl, value: calls.append(("a", tl, value)))
        timeline.on("x")(lambda tl, value: calls.append(("b", tl, value)))

        timeline.execute(7)

        assert calls == [("a", timeline, 7), ("b", timeline, 7)]

    def test_handle_prepend_and_replace(self):
        calls = []
        timeline = RecordingTimeline()
        timeline.on("x")(lambda tl: calls.append("a"))
        timeline.on("x").prepend(lambda tl: calls.append("b"))

        timeline.execute()
        assert calls == ["b", "a"]

        calls.clear()
        timeline.on("x").replace(lambda tl: calls.append("c"))
        timeline.execute()
        assert calls == ["c"]
        assert len(timeline.on("x").to_list()) == 1

    def test_subscribe_returns_timeline_for_chaining(self):
        timeline = RecordingTimeline()
        result = timeline.subscribe("x", lambda tl: None).subscribe("x", lambda tl: None)

        assert result is timeline
        assert len(timeline.list_observers("x")) == 2

    def test_unknown_moment_raises(self):
        """Undeclared moment names are rejected."""
        timeline = RecordingTimeline()

        with pytest.raises(UnknownMomentError) as exc_info:
            timeline.on("nope")

        assert "x" in exc_info.value.valid_moments
        with pytest.raises(UnknownMomentError):
            timeline.invoke("nope")

    def test_log_and_error_always_declared(self):
        timeline = RecordingTimeline()
        assert {"log", "error", "x", "total", "first"} <= set(timeline.moments)

    def test_list_observers_is_a_copy(self):
        timeline = RecordingTimeline()
        timeline.on("x")(lambda tl: None)

        timeline.list_observers("x").clear()

        assert len(timeline.list_observers("x")) == 1

    def test_unsubscribe_all(self):
        timeline = RecordingTimeline()
        timeline.on("x")(lambda tl: None)

        assert timeline.unsubscribe_all("x") is True
        assert timeline.list_observers("x") == []
        assert timeline.on("total").clear() is False


class TestDispatchPolicies:
    """Test reduce and request moments through a timeline."""

    def test_reduce_threads_arguments(self):
        timeline = RecordingTimeline()
        timeline.on("total")(lambda tl, a, b: (a + 1, b))
        timeline.on("total")(lambda tl, a, b: (a * 10, b + "!"))

        assert timeline.invoke("total", 1, "hi") == (20, "hi!")

    @pytest.mark.asyncio
    async def test_request_uses_first_observer_only(self):
        timeline = RecordingTimeline()
        timeline.on("first")(lambda tl, value: value * 2)
        timeline.on("first")(lambda tl, value: pytest.fail("second observer called"))

        assert await timeline.invoke("first", 21) == 42


class TestErrorRouting:
    """Test the error and log moments."""

    def test_error_without_observers_raises(self):
        """Invoking error with nothing subscribed is fatal."""
        timeline = RecordingTimeline()
        original = RuntimeError("boom")

        with pytest.raises(UnhandledErrorEvent) as exc_info:
            timeline.invoke("error", original)

        assert exc_info.value.error is original
        assert exc_info.value.__cause__ is original

    def test_error_without_observers_raises_for_non_exception(self):
        timeline = RecordingTimeline()

        with pytest.raises(UnhandledErrorEvent) as exc_info:
            timeline.invoke("error", "plain message")

        assert exc_info.value.error == "plain message"
        assert exc_info.value.__cause__ is None

    def test_observer_failure_routed_to_error(self):
        """A raising observer is re-dispatched to the error moment."""
        errors = []
        original = ValueError("bad observer")
        timeline = RecordingTimeline()
        timeline.on("error")(lambda tl, err: errors.append(err))

        def failing(tl, value):
            raise original

        timeline.on("x")(failing)
        timeline.execute(1)

        assert errors == [original]

    def test_observer_failure_without_error_observers_keeps_cause(self):
        """With nothing handling error, the original failure stays attached."""
        original = ValueError("bad observer")
        timeline = RecordingTimeline()

        def failing(tl):
            raise original

        timeline.on("x")(failing)

        with pytest.raises(UnhandledErrorEvent) as exc_info:
            timeline.execute()

        assert exc_info.value.__cause__ is original

    def test_error_observer_failure_not_rerouted(self):
        """An error raised while handling error escapes."""
        calls = []
        timeline = RecordingTimeline()

        def failing_handler(tl, err):
            calls.append(err)
            raise RuntimeError("handler failed")

        timeline.on("error")(failing_handler)

        with pytest.raises(RuntimeError, match="handler failed"):
            timeline.invoke("error", ValueError("first"))

        assert len(calls) == 1

    def test_log_without_observers_is_noop(self):
        timeline = RecordingTimeline()
        assert timeline.log("nothing listening", LogLevel.WARNING) is None

    def test_log_reaches_observers(self):
        messages = []
        timeline = RecordingTimeline()
        timeline.on("log")(lambda tl, message, level: messages.append((message, level)))

        timeline.log("hello", LogLevel.VERBOSE)
        timeline.log("default level")

        assert messages == [("hello", LogLevel.VERBOSE), ("default level", LogLevel.INFO)]


class TestObserverInheritance:
    """Test copy-on-first-write sharing of observer registries."""

    def test_initial_ownership(self):
        assert RecordingTimeline().ownership is ObserverOwnership.OWNING
        assert RecordingTimeline(ObserverRegistry()).ownership is ObserverOwnership.INHERITING

    def test_inheriting_timelines_see_parent_changes(self):
        parent = ObserverRegistry()
        a = RecordingTimeline(parent)
        b = RecordingTimeline(parent)

        def observer(tl):
            return None

        parent.add("x", observer)

        assert a.list_observers("x") == [observer]
        assert b.list_observers("x") == [observer]

    def test_first_local_change_isolates(self):
        """After A subscribes, B still tracks the parent but not A's change."""
        parent = ObserverRegistry()
        a = RecordingTimeline(parent)
        b = RecordingTimeline(parent)

        def via_a(tl):
            return None

        def via_parent(tl):
            return None

        a.subscribe("x", via_a)
        parent.add("x", via_parent)

        assert b.list_observers("x") == [via_parent]
        assert a.list_observers("x") == [via_a]
        assert a.ownership is ObserverOwnership.OWNING
        assert b.ownership is ObserverOwnership.INHERITING

    def test_clear_also_isolates(self):
        parent = ObserverRegistry()
        parent.add("x", lambda tl: None)
        child = RecordingTimeline(parent)

        assert child.unsubscribe_all("x") is True

        assert child.list_observers("x") == []
        assert len(parent.to_list("x")) == 1

    def test_reset_restores_parent(self):
        """reset_observers drops local changes and re-attaches to the parent."""
        parent = ObserverRegistry()
        child = RecordingTimeline(parent)
        child.subscribe("x", lambda tl: None, AddBehavior.REPLACE)

        child.reset_observers()

        assert child.ownership is ObserverOwnership.INHERITING
        assert child.observers is parent
        assert child.list_observers("x") == []

    def test_reset_without_parent_is_noop(self):
        timeline = RecordingTimeline()
        timeline.on("x")(lambda tl: None)
        registry = timeline.observers

        timeline.reset_observers()

        assert timeline.observers is registry
        assert timeline.ownership is ObserverOwnership.OWNING

    def test_using_applies_behaviors_in_order(self):
        order = []

        def behavior(name):
            def apply(instance):
                order.append(name)
                return instance

            return apply

        timeline = RecordingTimeline()
        assert timeline.using(behavior("one"), behavior("two")) is timeline
        assert order == ["one", "two"]
