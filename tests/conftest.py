from __future__ import annotations

import itertools

import pytest

from sensor_hub import Hub, create_app
from sensor_hub.config import build_config
from sensor_hub.hub import Broadcaster, SubscriberRegistry
from sensor_hub.ingest import IngestionHandler
from sensor_hub.state import StateStore


class StepClock:
    """Deterministic millisecond clock: 1000, 1001, 1002, ..."""

    def __init__(self, start: int = 1000) -> None:
        self._ticks = itertools.count(start)

    def __call__(self) -> int:
        return next(self._ticks)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def hub(clock: StepClock) -> Hub:
    store = StateStore(history_size=50, clock=clock)
    registry = SubscriberRegistry(queue_size=100)
    broadcaster = Broadcaster(store, registry)
    return Hub(store=store, registry=registry, broadcaster=broadcaster,
               ingestor=IngestionHandler(store, broadcaster, clock=clock))


@pytest.fixture
def app(hub: Hub):
    cfg = build_config({"hub": {"keepalive_seconds": 0.05}})
    app = create_app(cfg, hub=hub)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
