"""Observer plumbing for the remedy loop.

Each core component (work discovery, process metrics, replay verification)
owns one :class:`EventBus` and announces its lifecycle on it.  Diagnosis
producers use the same class to deliver ``ValidationFailed`` events to the
work queue.

Delivery is synchronous.  An observer that raises is logged and skipped, so
the component that published is never affected by a faulty observer.

:class:`EventStore` is a bounded recorder meant to be wired to a bus with
``subscribe_all``; tests and audit tooling read from it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable, Sequence

from remedy_loop.domain.events import DomainEvent, event_type_for

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]
#: An event class or its published kebab-case name.
EventKey = type[DomainEvent] | str


def _event_class(key: EventKey) -> type[DomainEvent]:
    """Resolve a subscription key.  Unknown names raise ``KeyError``."""
    return event_type_for(key) if isinstance(key, str) else key


def _discard(handlers: list[Handler], handler: Handler) -> bool:
    for i, registered in enumerate(handlers):
        if registered == handler:
            del handlers[i]
            return True
    return False


# ===================================================================== #
#  Event Bus                                                             #
# ===================================================================== #

class EventBus:
    """Synchronous publish/subscribe channel for domain events.

    Catch-all observers run before typed ones; within each group handlers run
    in the order they subscribed.  The subscriber lists are guarded by a lock
    so producers on other threads may publish, but handlers themselves run
    on the publishing thread outside the lock.

    Usage::

        bus = EventBus()
        bus.subscribe(WorkDiscovered, on_work)
        bus.subscribe("work-escalated", page_oncall)
        bus.subscribe_all(audit_log.append)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._typed: dict[type[DomainEvent], list[Handler]] = {}
        self._catch_all: list[Handler] = []

    # -- subscription -------------------------------------------------------

    def subscribe(self, event_type: EventKey, handler: Handler) -> None:
        """Call *handler* for every event of *event_type* (class or name)."""
        cls = _event_class(event_type)
        with self._lock:
            self._typed.setdefault(cls, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Call *handler* for every event published on this bus."""
        with self._lock:
            self._catch_all.append(handler)

    def unsubscribe(self, event_type: EventKey, handler: Handler) -> bool:
        """Drop one registration of *handler*.  ``False`` when none existed."""
        cls = _event_class(event_type)
        with self._lock:
            handlers = self._typed.get(cls)
            if not handlers or not _discard(handlers, handler):
                return False
            if not handlers:
                del self._typed[cls]
            return True

    def unsubscribe_all(self, handler: Handler) -> bool:
        """Drop a catch-all registration.  ``False`` when none existed."""
        with self._lock:
            return _discard(self._catch_all, handler)

    # -- delivery -----------------------------------------------------------

    def publish(self, event: DomainEvent) -> None:
        """Deliver *event* to catch-all observers, then to typed ones."""
        with self._lock:
            targets = [*self._catch_all, *self._typed.get(type(event), ())]
        for handler in targets:
            self._deliver(handler, event)

    def publish_many(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    @staticmethod
    def _deliver(handler: Handler, event: DomainEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception("Observer %r failed on %s", handler, event.event_name)

    # -- lifecycle ----------------------------------------------------------

    def handler_count(self, event_type: EventKey | None = None) -> int:
        """Registrations for *event_type*, or every registration when omitted."""
        with self._lock:
            if event_type is not None:
                return len(self._typed.get(_event_class(event_type), ()))
            return len(self._catch_all) + sum(map(len, self._typed.values()))

    def clear(self) -> None:
        """Forget every observer."""
        with self._lock:
            self._typed.clear()
            self._catch_all.clear()


# ===================================================================== #
#  Event Store                                                           #
# ===================================================================== #

class EventStore:
    """Bounded, ordered record of published events.

    Parameters
    ----------
    max_size:
        Number of events retained; the oldest go first.  ``0`` keeps all.

    Usage::

        store = EventStore()
        verifier.event_bus.subscribe_all(store.append)
        ...
        assert store.names()[-1] == "verification-completed"
    """

    def __init__(self, max_size: int = 0) -> None:
        self._lock = threading.Lock()
        self._events: deque[DomainEvent] = deque(maxlen=max_size or None)

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        event_type: EventKey | None = None,
        since: float | None = None,
        limit: int = 0,
    ) -> Sequence[DomainEvent]:
        """Recorded events, oldest first.

        Parameters
        ----------
        event_type:
            Keep only instances of this class (or published name).
        since:
            Keep only events with ``timestamp >= since``.
        limit:
            Return at most this many of the newest matches.  ``0`` returns
            every match.
        """
        cls = _event_class(event_type) if event_type is not None else None
        with self._lock:
            matches = [
                e
                for e in self._events
                if (cls is None or isinstance(e, cls))
                and (since is None or e.timestamp >= since)
            ]
        return matches[-limit:] if limit > 0 else matches

    def names(self) -> list[str]:
        """Published names of the recorded events, oldest first."""
        with self._lock:
            return [e.event_name for e in self._events]

    @property
    def latest(self) -> DomainEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __bool__(self) -> bool:
        return len(self) > 0

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
