"""In-process event bus connecting upload, retry and completion events."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from threading import Lock
from typing import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

EventHandler = Callable[[BaseModel], None]


@dataclass(slots=True, frozen=True)
class PublishedEvent:
    name: str
    payload: BaseModel
    published_at: datetime


@dataclass(slots=True)
class EventBus:
    """Dispatches each published event to its subscribers synchronously, in order.

    Handler exceptions propagate to the publisher. The most recent
    ``history_limit`` events are kept in ``published``.
    """

    history_limit: int = 1000
    _handlers: dict[str, list[EventHandler]] = field(default_factory=lambda: defaultdict(list))
    published: deque[PublishedEvent] = field(init=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def __post_init__(self) -> None:
        self.published = deque(maxlen=max(1, self.history_limit))

    def subscribe(self, name: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[name].append(handler)

    def publish(self, name: str, payload: BaseModel) -> None:
        with self._lock:
            self.published.append(PublishedEvent(name=name, payload=payload, published_at=datetime.now(UTC)))
            handlers = list(self._handlers.get(name, ()))
        logger.info("event.published name=%s subscribers=%d", name, len(handlers))
        for handler in handlers:
            handler(payload)

    def events_named(self, name: str) -> list[BaseModel]:
        with self._lock:
            return [event.payload for event in self.published if event.name == name]


__all__ = ["EventBus", "EventHandler", "PublishedEvent"]
