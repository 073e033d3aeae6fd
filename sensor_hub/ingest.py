from __future__ import annotations
import threading
from typing import Any, Callable
from pydantic import ValidationError
from .exceptions import MalformedReadingError
from .hub import Broadcaster
from .models import Reading, Snapshot
from .state import StateStore
from .utils import now_ms


def parse_reading(payload: Any) -> Reading:
    """Validate a raw key/value reading.

    Any subset of recognized fields is accepted, unknown keys are ignored and
    null counts as not reported. Every wrong-shaped field is collected into
    one MalformedReadingError keyed by its wire name.
    """
    try:
        return Reading.model_validate(payload)
    except ValidationError as e:
        fields = {
            ".".join(str(p) for p in err["loc"]) or "reading": err["msg"]
            for err in e.errors()
        }
        detail = ", ".join(f"{k}: {v}" for k, v in sorted(fields.items()))
        raise MalformedReadingError(f"malformed reading ({detail})", fields=fields) from e


class IngestionHandler:
    """Validate, apply to the store, then fan out.

    Apply and broadcast run under one lock so live updates leave in the same
    order the store applied them.
    """

    def __init__(self, store: StateStore, broadcaster: Broadcaster,
                 clock: Callable[[], int] = now_ms) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._clock = clock
        self._lock = threading.Lock()

    def ingest(self, payload: Any) -> Snapshot:
        reading = parse_reading(payload)
        with self._lock:
            snap = self._store.apply_reading(reading, self._clock())
            self._broadcaster.broadcast_snapshot(snap)
        return snap
