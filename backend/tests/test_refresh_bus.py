from discovery.refresh import RefreshBus


def test_publish_calls_subscribers_in_order():
    bus = RefreshBus()
    calls = []
    bus.subscribe(lambda: calls.append("first"))
    bus.subscribe(lambda: calls.append("second"))

    bus.publish()
    assert calls == ["first", "second"]


def test_unsubscribe_stops_delivery():
    bus = RefreshBus()
    calls = []

    def subscriber():
        calls.append(1)

    bus.subscribe(subscriber)
    bus.subscribe(subscriber)
    assert len(bus) == 1

    bus.publish()
    bus.unsubscribe(subscriber)
    bus.unsubscribe(subscriber)
    bus.publish()
    assert calls == [1]


def test_failing_subscriber_does_not_block_others():
    bus = RefreshBus()
    calls = []

    def broken():
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(lambda: calls.append("ok"))
    bus.publish()
    assert calls == ["ok"]


def test_unsubscribe_during_publish():
    bus = RefreshBus()
    calls = []

    def once():
        calls.append("once")
        bus.unsubscribe(once)

    bus.subscribe(once)
    bus.subscribe(lambda: calls.append("always"))
    bus.publish()
    bus.publish()
    assert calls == ["once", "always", "always"]
