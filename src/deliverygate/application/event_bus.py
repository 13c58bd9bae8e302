"""Publish/subscribe fan-out for policy and safety notifications."""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from deliverygate.domain.events import ControlEvent, EventType

logger = logging.getLogger(__name__)

Handler = Callable[[ControlEvent], None]


@dataclass(frozen=True)
class Subscription:
    """Registered handler; ``event_type`` None means every event."""

    subscription_id: str
    subscriber: str
    event_type: EventType | None
    handler: Handler


class EventBus:
    """Explicit observer list shared by the control-plane components.

    Subscribers are enumerable so tests and diagnostics can see exactly who
    reacts to a policy or safety change. Handlers run synchronously in
    publish order. A failing handler is logged and the remaining handlers
    still run, so a halt always reaches every subscriber.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.RLock()

    def subscribe(
        self,
        handler: Handler,
        event_type: EventType | None = None,
        subscriber: str = "anonymous",
    ) -> Callable[[], None]:
        """Register a handler and return a callable that unsubscribes it."""
        subscription = Subscription(
            subscription_id=str(uuid.uuid4()),
            subscriber=subscriber,
            event_type=event_type,
            handler=handler,
        )
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def subscribers(self, event_type: EventType | None = None) -> list[str]:
        """Names of subscribers that receive ``event_type``."""
        with self._lock:
            return [
                s.subscriber
                for s in self._subscriptions
                if event_type is None or s.event_type in (None, event_type)
            ]

    def publish(
        self,
        event_type: EventType,
        source: str,
        payload: dict[str, Any] | None = None,
    ) -> ControlEvent:
        event = ControlEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            source=source,
            payload=payload or {},
            created_at=datetime.now(UTC).isoformat(),
        )
        with self._lock:
            targets = [
                s
                for s in self._subscriptions
                if s.event_type is None or s.event_type == event_type
            ]
        logger.debug("%s from %s -> %d subscriber(s)", event_type.value, source, len(targets))
        for subscription in targets:
            try:
                subscription.handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed handling %s", subscription.subscriber, event_type.value
                )
        return event
