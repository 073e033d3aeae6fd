from __future__ import annotations
import threading
from collections import deque
from typing import Deque, Tuple
from .models import HistoryPoint

DEFAULT_CAPACITY = 50


class HistoryBuffer:
    """Fixed-capacity FIFO of timestamped values for one metric, oldest first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._points: Deque[HistoryPoint] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, value: float, timestamp: int) -> None:
        # deque(maxlen) drops the oldest point on overflow
        with self._lock:
            self._points.append(HistoryPoint(value=value, timestamp=timestamp))

    def snapshot(self) -> Tuple[HistoryPoint, ...]:
        with self._lock:
            return tuple(self._points)

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)
