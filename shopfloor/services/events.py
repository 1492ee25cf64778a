"""
Notification fan-out.

Core operations publish domain events after their transaction commits; the
bus stamps each one with a sequence number, keeps a bounded replay buffer and
pushes it to every connected subscriber queue. Delivery is best effort: a
subscriber that falls behind loses events and is expected to reconcile by
refetching or reconnecting with its last seen sequence number.
"""

import asyncio
import logging
import threading
import uuid
from collections import deque
from typing import Any, Dict, List, Optional

from ..config import EVENT_BUFFER_SIZE, EVENT_SUBSCRIBER_QUEUE
from ..utils.timeutil import isoformat, utcnow
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("shopfloor.events")

JOB_CREATED = "job.created"
JOB_UPDATED = "job.updated"
JOB_DELETED = "job.deleted"
JOB_ARCHIVED = "job.archived"
TIMER_STARTED = "timer.started"
TIMER_STOPPED = "timer.stopped"


class Subscription:
    """One connected client: a bounded queue living on the client's event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: Dict[str, Any]):
        # Runs on self.loop
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            prometheus_metrics.increment_events_dropped()
            logger.warning("event dropped for slow subscriber", extra={
                "seq": event["seq"], "event_name": event["event"], "dropped": self.dropped,
            })

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class EventBus:
    def __init__(self, buffer_size: int = EVENT_BUFFER_SIZE, queue_size: int = EVENT_SUBSCRIBER_QUEUE):
        # Sequence numbers restart with the process; the epoch tells runs apart
        self.epoch = uuid.uuid4().hex[:12]
        self._lock = threading.Lock()
        self._seq = 0
        self._recent = deque(maxlen=buffer_size)
        self._subscribers = set()
        self._queue_size = queue_size

    def publish(self, event_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Stamp and fan out one event. Never raises into the caller."""
        with self._lock:
            self._seq += 1
            event = {
                "seq": self._seq,
                "event": event_name,
                "job_id": payload.get("job_id", payload.get("id")),
                "ts": isoformat(utcnow()),
                "data": payload,
            }
            self._recent.append(event)
            # Deliver under the lock so every subscriber sees events in seq order
            for sub in list(self._subscribers):
                try:
                    sub.loop.call_soon_threadsafe(sub.offer, event)
                except RuntimeError:
                    # Subscriber's loop is gone
                    self._subscribers.discard(sub)
            subscriber_count = len(self._subscribers)

        prometheus_metrics.increment_events_published(event_name)
        prometheus_metrics.set_event_subscribers(subscriber_count)
        logger.debug("event published", extra={
            "seq": event["seq"], "event_name": event_name, "job_id": event["job_id"],
            "subscribers": subscriber_count,
        })
        return event

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        """Register a subscriber bound to the running event loop."""
        sub = Subscription(asyncio.get_running_loop(), maxsize or self._queue_size)
        with self._lock:
            self._subscribers.add(sub)
            count = len(self._subscribers)
        prometheus_metrics.set_event_subscribers(count)
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            self._subscribers.discard(sub)
            count = len(self._subscribers)
        prometheus_metrics.set_event_subscribers(count)

    def events_since(self, seq: int) -> List[Dict[str, Any]]:
        """Buffered events newer than `seq`, oldest first."""
        with self._lock:
            return [e for e in self._recent if e["seq"] > seq]

    def recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        with self._lock:
            items = list(self._recent)
        return items[-limit:] if limit else items

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def first_buffered_seq(self) -> int:
        """Oldest seq still replayable (last_seq + 1 when the buffer is empty)."""
        with self._lock:
            return self._recent[0]["seq"] if self._recent else self._seq + 1

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


# Process-wide bus used by the API
event_bus = EventBus()
