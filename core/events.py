import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Any, List, Optional

from config import config

logger = logging.getLogger(__name__)

# Subscribers registered under this name receive every topic
ALL_TOPICS = "*"


@dataclass
class Event:
    """A published notification. Side channel, never part of program state."""
    topic: str
    payload: Dict[str, Any]
    program: str = ""
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """Minimal async event bus for program notifications."""

    def __init__(self, history_size: Optional[int] = None):
        self._subscribers: Dict[str, List[Callable[[Event], Any]]] = {}
        self._lock = asyncio.Lock()
        # most recent events only
        self.history: Deque[Event] = deque(maxlen=history_size or config.host.event_history_size)

    async def subscribe(self, topic: str, callback: Callable[[Event], Any]) -> None:
        async with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

    async def unsubscribe(self, topic: str, callback: Callable[[Event], Any]) -> None:
        async with self._lock:
            if topic in self._subscribers:
                self._subscribers[topic] = [cb for cb in self._subscribers[topic] if cb != callback]

    async def publish(self, topic: str, payload: Dict[str, Any], program: str = "") -> Event:
        """
        Record the event and deliver it to subscribers before returning.

        Subscribers run inside the publishing call, so a subscriber that
        calls back into a program does so before the publisher continues.
        """
        event = Event(topic=topic, payload=dict(payload), program=program)
        self.history.append(event)
        await self.broadcast(event)
        return event

    async def broadcast(self, event: Event) -> None:
        async with self._lock:
            callbacks = list(self._subscribers.get(event.topic, []))
            callbacks += self._subscribers.get(ALL_TOPICS, [])
        for cb in callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                # one failing listener must not break the others
                logger.warning(f"[EVENTS] Subscriber failed on {event.topic}: {e!r}")
                continue

    def topics(self) -> List[str]:
        return [e.topic for e in self.history]

    def clear(self) -> None:
        self.history.clear()
