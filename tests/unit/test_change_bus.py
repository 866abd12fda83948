"""Tests for the change notification bus."""
from clinic_booking.events import ChangeBus


def test_publish_calls_subscribers_in_registration_order():
    bus = ChangeBus()
    calls = []
    bus.subscribe(lambda: calls.append("first"))
    bus.subscribe(lambda: calls.append("second"))
    bus.subscribe(lambda: calls.append("third"))

    bus.publish()

    assert calls == ["first", "second", "third"]


def test_every_publish_reinvokes_subscribers():
    bus = ChangeBus()
    calls = []
    bus.subscribe(lambda: calls.append(1))

    bus.publish()
    bus.publish()

    assert calls == [1, 1]


def test_unsubscribe_removes_only_that_subscription():
    bus = ChangeBus()
    calls = []
    callback = lambda: calls.append("shared")
    unsubscribe_first = bus.subscribe(callback)
    bus.subscribe(callback)

    unsubscribe_first()
    bus.publish()

    assert calls == ["shared"]
    assert len(bus) == 1


def test_unsubscribe_is_idempotent():
    bus = ChangeBus()
    unsubscribe = bus.subscribe(lambda: None)

    unsubscribe()
    unsubscribe()

    assert len(bus) == 0


def test_subscription_context_manager_ties_to_block():
    bus = ChangeBus()
    calls = []

    with bus.subscription(lambda: calls.append("mounted")):
        bus.publish()
    bus.publish()

    assert calls == ["mounted"]
    assert len(bus) == 0


def test_failing_subscriber_does_not_block_others():
    bus = ChangeBus()
    calls = []

    def broken():
        raise RuntimeError("view gone")

    bus.subscribe(broken)
    bus.subscribe(lambda: calls.append("still called"))

    bus.publish()

    assert calls == ["still called"]


def test_unsubscribe_during_publish_skips_later_callback():
    bus = ChangeBus()
    calls = []
    holder = {}

    def first():
        calls.append("first")
        holder["unsub_second"]()

    bus.subscribe(first)
    holder["unsub_second"] = bus.subscribe(lambda: calls.append("second"))

    bus.publish()

    assert calls == ["first"]


def test_publish_with_no_subscribers():
    ChangeBus().publish()
