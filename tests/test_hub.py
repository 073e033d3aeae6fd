from __future__ import annotations

import threading

import pytest

from sensor_hub import Hub
from sensor_hub.exceptions import DeliveryError, RegistryFullError
from sensor_hub.hub import (
    EVENT_HISTORY,
    EVENT_SNAPSHOT,
    Broadcaster,
    Message,
    Subscriber,
    SubscriberRegistry,
    SubscriberState,
)
from sensor_hub.models import Reading
from sensor_hub.state import StateStore


def _drain(sub: Subscriber) -> list[Message]:
    out = []
    while True:
        msg = sub.receive(timeout=0.01)
        if msg is None:
            return out
        out.append(msg)


def _broken_send(msg: Message) -> None:
    raise DeliveryError("channel closed")


def test_join_sends_catch_up_before_live_updates(hub: Hub) -> None:
    hub.ingestor.ingest({"heartRate": 72, "spo2": 97})
    hub.ingestor.ingest({"heartRate": 75})
    latest = hub.store.get_latest()

    sub = hub.registry.join()
    hub.ingestor.ingest({"heartRate": 80})

    msgs = _drain(sub)
    assert [m.event for m in msgs] == [EVENT_SNAPSHOT, EVENT_HISTORY, EVENT_SNAPSHOT]
    assert msgs[0].data == latest.model_dump(by_alias=True)
    assert [p["value"] for p in msgs[1].data["heartRate"]] == [72, 75]
    assert msgs[1].data["temperature"] == []
    assert msgs[2].data["heartRate"] == 80


def test_joined_subscriber_gets_exactly_one_catch_up(hub: Hub) -> None:
    sub = hub.registry.join()
    msgs = _drain(sub)

    assert [m.event for m in msgs].count(EVENT_HISTORY) == 1
    assert [m.event for m in msgs].count(EVENT_SNAPSHOT) == 1
    assert sub.state is SubscriberState.JOINED


def test_broadcast_reaches_every_subscriber(hub: Hub) -> None:
    subs = [hub.registry.join() for _ in range(3)]
    for sub in subs:
        _drain(sub)

    snap = hub.store.apply_reading(Reading(spo2=95), 7)
    assert hub.broadcaster.broadcast_snapshot(snap) == 3
    for sub in subs:
        (msg,) = _drain(sub)
        assert msg.data["spo2"] == 95
    assert hub.broadcaster.stats() == {"delivered": 3, "failed": 0}


def test_failed_subscriber_does_not_block_healthy_one(hub: Hub) -> None:
    bad = hub.registry.join()
    good = hub.registry.join()
    _drain(good)
    bad.send = _broken_send

    hub.ingestor.ingest({"temperature": 37.0})

    (msg,) = _drain(good)
    assert msg.data["temperature"] == 37.0
    assert bad.state is SubscriberState.DISCONNECTED
    assert bad not in hub.registry.members()
    assert hub.broadcaster.stats()["failed"] == 1


def test_full_mailbox_is_a_delivery_failure(clock) -> None:
    store = StateStore(clock=clock)
    registry = SubscriberRegistry(queue_size=3)
    broadcaster = Broadcaster(store, registry)
    slow = registry.join()  # 2 catch-up messages queued, never drained

    snap = store.apply_reading(Reading(heart_rate=60), 1)
    assert broadcaster.broadcast_snapshot(snap) == 1
    assert broadcaster.broadcast_snapshot(snap) == 0

    assert slow.closed
    assert len(registry) == 0


def test_disconnected_subscriber_gets_no_more_deliveries(hub: Hub) -> None:
    sub = hub.registry.join()
    _drain(sub)
    hub.registry.leave(sub)

    hub.ingestor.ingest({"heartRate": 90})

    assert _drain(sub) == []
    assert hub.broadcaster.stats()["delivered"] == 0


def test_leave_is_idempotent(hub: Hub) -> None:
    sub = hub.registry.join()

    assert hub.registry.leave(sub) is True
    assert hub.registry.leave(sub) is False
    assert sub.state is SubscriberState.DISCONNECTED
    assert len(hub.registry) == 0


def test_catch_up_failure_still_joins(clock) -> None:
    store = StateStore(clock=clock)
    registry = SubscriberRegistry(queue_size=1)
    Broadcaster(store, registry)

    sub = registry.join()

    assert sub.state is SubscriberState.JOINED
    assert sub in registry.members()


def test_subscriber_lifecycle() -> None:
    sub = Subscriber(queue_size=2)
    assert sub.state is SubscriberState.CONNECTING
    sub.mark_joined()
    assert sub.state is SubscriberState.JOINED
    sub.close()
    assert sub.state is SubscriberState.DISCONNECTED
    # terminal
    sub.mark_joined()
    assert sub.state is SubscriberState.DISCONNECTED
    try:
        sub.send(Message(EVENT_SNAPSHOT, {}))
    except DeliveryError:
        pass
    else:
        raise AssertionError("send after close must fail")


def test_close_wakes_a_blocked_receiver() -> None:
    sub = Subscriber()
    got = []
    t = threading.Thread(target=lambda: got.append(sub.receive(timeout=5)))
    t.start()
    sub.close()
    t.join(timeout=2)

    assert not t.is_alive()
    assert got == [None]


def test_registry_changes_during_broadcast_are_safe(hub: Hub) -> None:
    errors = []

    def churn() -> None:
        try:
            for _ in range(200):
                sub = hub.registry.join()
                hub.registry.leave(sub)
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [threading.Thread(target=churn) for _ in range(3)]
    for t in threads:
        t.start()
    for i in range(200):
        hub.ingestor.ingest({"acceleration": float(i)})
    for t in threads:
        t.join()

    assert errors == []
    assert len(hub.registry) == 0


def test_join_refused_at_subscriber_limit(clock) -> None:
    store = StateStore(clock=clock)
    registry = SubscriberRegistry(max_subscribers=2)
    Broadcaster(store, registry)

    a = registry.join()
    registry.join()
    with pytest.raises(RegistryFullError):
        registry.join()
    assert len(registry) == 2

    registry.leave(a)
    assert registry.join().state is SubscriberState.JOINED
