from __future__ import annotations
import itertools
import threading
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, List, Optional, Set
from .exceptions import DeliveryError, RegistryFullError
from .models import Snapshot
from .state import StateStore

EVENT_SNAPSHOT = "sensorData"
EVENT_HISTORY = "historyData"

_ids = itertools.count(1)


@dataclass(frozen=True)
class Message:
    event: str
    data: Dict[str, Any]


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


class Subscriber:
    """One live viewer connection: a bounded mailbox drained by the transport."""

    _CLOSED = object()

    def __init__(self, queue_size: int = 100) -> None:
        self.id = next(_ids)
        self._q: Queue = Queue(maxsize=queue_size)
        self._state = SubscriberState.CONNECTING
        self._state_lock = threading.Lock()

    @property
    def state(self) -> SubscriberState:
        return self._state

    def send(self, msg: Message) -> None:
        """Enqueue without blocking; a full or closed mailbox is a delivery failure."""
        if self._state is SubscriberState.DISCONNECTED:
            raise DeliveryError(f"subscriber {self.id} is disconnected")
        try:
            self._q.put_nowait(msg)
        except Full:
            raise DeliveryError(f"subscriber {self.id} queue full ({self._q.maxsize})")

    def receive(self, timeout: float) -> Optional[Message]:
        """Next message, or None on timeout or once closed and drained."""
        try:
            item = self._q.get(timeout=timeout)
        except Empty:
            return None
        if item is self._CLOSED:
            return None
        return item

    @property
    def closed(self) -> bool:
        return self._state is SubscriberState.DISCONNECTED

    def mark_joined(self) -> None:
        with self._state_lock:
            if self._state is SubscriberState.CONNECTING:
                self._state = SubscriberState.JOINED

    def close(self) -> None:
        with self._state_lock:
            if self._state is SubscriberState.DISCONNECTED:
                return
            self._state = SubscriberState.DISCONNECTED
        try:
            # wake a blocked receive(); a full mailbox is drained by the reader anyway
            self._q.put_nowait(self._CLOSED)
        except Full:
            pass


class SubscriberRegistry:
    """Currently connected subscribers. Iteration order is unspecified."""

    def __init__(self, queue_size: int = 100, max_subscribers: int | None = None) -> None:
        self._queue_size = queue_size
        self._max = max_subscribers
        self._subs: Set[Subscriber] = set()
        self._lock = threading.Lock()
        self._on_join: Callable[[Subscriber], None] | None = None

    @property
    def max_subscribers(self) -> int | None:
        return self._max

    def set_catch_up(self, fn: Callable[[Subscriber], None]) -> None:
        self._on_join = fn

    def join(self) -> Subscriber:
        sub = Subscriber(self._queue_size)
        with self._lock:
            if self._max is not None and len(self._subs) >= self._max:
                raise RegistryFullError(f"subscriber limit reached ({self._max})")
            # catch-up is queued before the subscriber is visible to broadcasts
            if self._on_join is not None:
                try:
                    self._on_join(sub)
                except DeliveryError as e:
                    print(f"[hub] catch-up failed for subscriber {sub.id}: {e}")
            self._subs.add(sub)
            sub.mark_joined()
        print(f"[hub] subscriber {sub.id} joined (total={len(self)})")
        return sub

    def leave(self, sub: Subscriber) -> bool:
        """Deregister; leaving twice is a no-op. Returns True if it was registered."""
        with self._lock:
            present = sub in self._subs
            self._subs.discard(sub)
        sub.close()
        if present:
            print(f"[hub] subscriber {sub.id} left (total={len(self)})")
        return present

    def members(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)


class Broadcaster:
    """Pushes snapshots to every subscriber and catch-up bursts to new ones."""

    def __init__(self, store: StateStore, registry: SubscriberRegistry) -> None:
        self._store = store
        self._registry = registry
        self._delivered = 0
        self._failed = 0
        self._stats_lock = threading.Lock()
        registry.set_catch_up(self.send_catch_up)

    def send(self, sub: Subscriber, msg: Message) -> bool:
        try:
            sub.send(msg)
        except DeliveryError as e:
            print(f"[hub] delivery failed: {e}")
            with self._stats_lock:
                self._failed += 1
            self._registry.leave(sub)
            return False
        with self._stats_lock:
            self._delivered += 1
        return True

    def broadcast_snapshot(self, snapshot: Snapshot) -> int:
        """Best-effort fan-out; returns the number of successful deliveries."""
        msg = Message(EVENT_SNAPSHOT, snapshot.model_dump(by_alias=True))
        ok = 0
        for sub in self._registry.members():
            if sub.closed:
                continue
            if self.send(sub, msg):
                ok += 1
        return ok

    def send_catch_up(self, sub: Subscriber) -> None:
        view = self._store.view()
        sub.send(Message(EVENT_SNAPSHOT, view.snapshot.model_dump(by_alias=True)))
        sub.send(Message(EVENT_HISTORY, view.history_dict()))

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return {"delivered": self._delivered, "failed": self._failed}
