from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple
from .history import DEFAULT_CAPACITY, HistoryBuffer
from .models import HISTORY_METRICS, HistoryPoint, Reading, Snapshot
from .utils import now_ms

History = Dict[str, Tuple[HistoryPoint, ...]]


@dataclass(frozen=True)
class StoreView:
    """Snapshot and history taken at the same point in time."""
    snapshot: Snapshot
    history: History

    def history_dict(self) -> Dict[str, List[Dict]]:
        return {name: [p.model_dump(by_alias=True) for p in pts] for name, pts in self.history.items()}


class StateStore:
    """Latest snapshot plus one HistoryBuffer per historized metric.

    apply_reading() is the only mutator. Writers serialize on a lock; once the
    history pushes of an ingestion are done, a new immutable StoreView is
    published with a single reference swap. Readers never lock and never see
    a half-applied reading.
    """

    def __init__(self, history_size: int = DEFAULT_CAPACITY,
                 clock: Callable[[], int] = now_ms) -> None:
        self._write_lock = threading.Lock()
        self._buffers: Dict[str, HistoryBuffer] = {
            name: HistoryBuffer(history_size) for name in HISTORY_METRICS
        }
        self._ingested = 0
        self._view = StoreView(
            snapshot=Snapshot.initial(clock()),
            history={name: () for name in HISTORY_METRICS},
        )

    def apply_reading(self, reading: Reading, timestamp: int) -> Snapshot:
        with self._write_lock:
            snap = Snapshot.from_reading(reading, timestamp)
            for name in HISTORY_METRICS:
                value = reading.metric(name)
                if value is not None:
                    self._buffers[name].push(value, timestamp)
            self._view = StoreView(
                snapshot=snap,
                history={name: buf.snapshot() for name, buf in self._buffers.items()},
            )
            self._ingested += 1
            return snap

    def view(self) -> StoreView:
        return self._view

    def get_latest(self) -> Snapshot:
        return self._view.snapshot

    def get_history(self) -> History:
        return dict(self._view.history)

    def stats(self) -> Dict[str, int]:
        return {"ingested": self._ingested}
