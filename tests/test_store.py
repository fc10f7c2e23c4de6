"""
Store and stream tests: hot/cold transitions, handler arity and delivery.
"""

import logging
from unittest.mock import Mock

from starwire.core.store import Store, Stream, create_writable_stream


def make_store(value=None):
    hot, cold = Mock(), Mock()
    return Store("main", read=lambda: value, on_hot=hot, on_cold=cold), hot, cold


class TestStore:
    """Reference counted store subscriptions"""

    def test_get_reads_through(self):
        store, _, _ = make_store({"name": "Ann"})
        assert store.get() == {"name": "Ann"}

    def test_first_subscriber_makes_store_hot(self):
        store, hot, cold = make_store()
        store.subscribe(lambda: None)
        store.subscribe(lambda: None)
        hot.assert_called_once_with("main")
        cold.assert_not_called()
        assert store.subscriber_count == 2

    def test_last_unsubscribe_makes_store_cold(self):
        store, hot, cold = make_store()
        first = store.subscribe(lambda: None)
        second = store.subscribe(lambda: None)
        first()
        cold.assert_not_called()
        second()
        cold.assert_called_once_with("main")
        assert store.subscriber_count == 0

    def test_unsubscribe_is_idempotent(self):
        store, _, cold = make_store()
        unsubscribe = store.subscribe(lambda: None)
        unsubscribe()
        unsubscribe()
        cold.assert_called_once()

    def test_resubscribe_after_cold(self):
        store, hot, cold = make_store()
        store.subscribe(lambda: None)()
        store.subscribe(lambda: None)
        assert hot.call_count == 2
        assert cold.call_count == 1

    def test_handlers_with_and_without_value(self):
        store, _, _ = make_store()
        received = []
        calls = []
        store.subscribe(received.append)
        store.subscribe(lambda: calls.append("called"))
        store.notify({"v": 1})
        assert received == [{"v": 1}]
        assert calls == ["called"]

    def test_handler_removed_during_delivery_is_skipped(self):
        store, _, _ = make_store()
        calls = []
        holder = {}

        def first():
            calls.append("first")
            holder["second"]()

        store.subscribe(first)
        holder["second"] = store.subscribe(lambda: calls.append("second"))
        store.notify(None)
        assert calls == ["first"]

    def test_handler_added_during_delivery_waits(self):
        store, _, _ = make_store()
        calls = []

        def first():
            calls.append("first")
            store.subscribe(lambda: calls.append("late"))

        store.subscribe(first)
        store.notify(None)
        assert calls == ["first"]

    def test_failing_handler_does_not_stop_delivery(self, caplog):
        store, _, _ = make_store()
        received = []

        def broken(value):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(received.append)
        with caplog.at_level(logging.ERROR, logger="starwire"):
            store.notify("v")

        assert received == ["v"]
        assert "Subscriber of Store('main'" in caplog.text


class TestStream:
    """Writable streams"""

    def test_writable_stream(self):
        set_state, stream = create_writable_stream("idle")
        assert isinstance(stream, Stream)
        seen = []
        unsubscribe = stream.subscribe(seen.append)
        set_state("busy")
        assert stream.get() == "busy"
        unsubscribe()
        set_state("idle")
        assert seen == ["busy"]
