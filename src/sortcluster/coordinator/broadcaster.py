"""Ordered fan-out of coordinator events to connected observers."""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from sortcluster.protocol.messages import Event, EventType, LogEntry

logger = logging.getLogger(__name__)


@dataclass
class BroadcasterConfig:
    """Configuration for the event broadcaster."""

    history_limit: Optional[int] = None  # None keeps the whole log


class Subscription:
    """One observer's ordered event queue."""

    def __init__(self, observer_id: str):
        self.observer_id = observer_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def put(self, event: Event):
        self._queue.put_nowait(event)

    async def get(self) -> Event:
        """Wait for the next event for this observer."""
        return await self._queue.get()

    def get_nowait(self) -> Event:
        return self._queue.get_nowait()

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class EventBroadcaster:
    """
    Fans out coordinator events to observers.

    Responsibilities:
    - Deliver every event to every observer in publish order
    - Keep the human-readable event log
    - Hand new observers the current snapshot plus the full log before
      any live event

    Every method here is synchronous. Running on the coordinator's event
    loop, nothing can interleave between capturing the snapshot and
    history for a new observer and registering it for live events.
    """

    def __init__(self, config: Optional[BroadcasterConfig] = None):
        """
        Initialize EventBroadcaster.

        Args:
            config: Broadcaster configuration. Uses defaults if not provided.
        """
        self.config = config or BroadcasterConfig()

        self._subscribers: Dict[str, Subscription] = {}
        self._history: Deque[LogEntry] = deque(maxlen=self.config.history_limit)
        self._sequence = itertools.count(1)

    @property
    def observer_count(self) -> int:
        return len(self._subscribers)

    @property
    def history(self) -> List[LogEntry]:
        """Event log in original order."""
        return list(self._history)

    def publish(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None) -> Event:
        """
        Publish an event to every current observer.

        Args:
            event_type: Event type
            payload: Event data

        Returns:
            The published event
        """
        event = Event(
            event_type=event_type,
            sequence_id=next(self._sequence),
            payload=payload or {},
        )
        for subscription in self._subscribers.values():
            subscription.put(event)
        return event

    def log(self, message: str) -> LogEntry:
        """Append a line to the event log and publish it."""
        entry = LogEntry(message=message)
        self._history.append(entry)
        self.publish(EventType.LOG_UPDATE, entry.to_dict())
        logger.info(message)
        return entry

    def subscribe(self, observer_id: str, snapshot: Dict[str, Any]) -> Subscription:
        """
        Attach an observer.

        The observer first receives ``snapshot`` as an initial_snapshot
        event, then every historical log line in order, then live events.

        Args:
            observer_id: Unique id of the observer connection
            snapshot: Registry snapshot captured by the caller

        Returns:
            The observer's subscription
        """
        if observer_id in self._subscribers:
            raise ValueError(f"Observer {observer_id} already subscribed")

        subscription = Subscription(observer_id)
        subscription.put(Event(
            event_type=EventType.INITIAL_SNAPSHOT,
            sequence_id=next(self._sequence),
            payload=snapshot,
        ))
        for entry in self._history:
            subscription.put(Event(
                event_type=EventType.LOG_UPDATE,
                sequence_id=next(self._sequence),
                payload=entry.to_dict(),
                timestamp=entry.timestamp,
            ))

        self._subscribers[observer_id] = subscription
        logger.debug(
            f"Observer {observer_id} subscribed, replayed {len(self._history)} log lines"
        )
        return subscription

    def unsubscribe(self, observer_id: str) -> bool:
        """Detach an observer. Returns False if it was not attached."""
        subscription = self._subscribers.pop(observer_id, None)
        if subscription is None:
            return False
        subscription.closed = True
        logger.debug(f"Observer {observer_id} unsubscribed")
        return True
