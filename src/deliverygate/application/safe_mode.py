"""Safe mode: a reversible restricted-operation mode."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from deliverygate.application.event_bus import EventBus
from deliverygate.domain.events import EventType
from deliverygate.domain.exceptions import AlreadyActive, NotActive
from deliverygate.domain.models import SafeModeStatus
from deliverygate.domain.safety import (
    CONFIRMATION_ACTIONS,
    DEFAULT_RESTRICTIONS,
    RESTRICTIONS,
    SAFE_MODE_ALLOWED_ACTIONS,
)

logger = logging.getLogger(__name__)

SOURCE = "safe-mode"


class SafeMode:
    """
    Restricts which actions may execute and which need confirmation.

    Restriction effects are published on the bus rather than applied to
    other components directly; the policy store layers the settings each
    restriction pins.
    """

    def __init__(
        self,
        bus: EventBus,
        clock: Callable[[], float] = time.time,
    ):
        self._bus = bus
        self._clock = clock
        self._lock = threading.RLock()
        self._active = False
        self._started_at: float | None = None
        self._restrictions: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        return self._active

    def activate(self, restrictions: Iterable[str] | None = None) -> SafeModeStatus:
        """
        Enter safe mode with the given restrictions (default set if None).

        Raises:
            AlreadyActive: If safe mode is already on
        """
        with self._lock:
            if self._active:
                raise AlreadyActive()
            if restrictions is None:
                chosen = DEFAULT_RESTRICTIONS
            else:
                chosen = tuple(dict.fromkeys(restrictions))
            self._active = True
            self._started_at = self._clock()
            self._restrictions = chosen

        logger.warning("Safe mode activated with %d restriction(s)", len(chosen))
        for restriction in chosen:
            effect = RESTRICTIONS.get(restriction)
            if effect is None:
                logger.warning("Unknown restriction: %s", restriction)
                continue
            self._bus.publish(
                EventType.RESTRICTION_APPLIED,
                SOURCE,
                {"restriction": restriction, "effect": effect.apply},
            )
        self._bus.publish(
            EventType.SAFE_MODE_ACTIVATED,
            SOURCE,
            {"restrictions": list(chosen)},
        )
        return self.status()

    def deactivate(self) -> SafeModeStatus:
        """
        Leave safe mode, reverting every applied restriction.

        Raises:
            NotActive: If safe mode is off
        """
        with self._lock:
            if not self._active:
                raise NotActive()
            started_at = self._started_at
            restrictions = self._restrictions
            self._active = False
            self._started_at = None
            self._restrictions = ()

        for restriction in reversed(restrictions):
            effect = RESTRICTIONS.get(restriction)
            if effect is None:
                continue
            self._bus.publish(
                EventType.RESTRICTION_REMOVED,
                SOURCE,
                {"restriction": restriction, "effect": effect.revert},
            )

        duration = self._clock() - started_at if started_at is not None else 0.0
        logger.info("Safe mode deactivated after %.1fs", duration)
        self._bus.publish(
            EventType.SAFE_MODE_DEACTIVATED,
            SOURCE,
            {"duration": duration},
        )
        return self.status()

    def is_allowed(self, action: str) -> bool:
        if not self._active:
            return True
        return action in SAFE_MODE_ALLOWED_ACTIONS

    def requires_confirmation(self, action: str) -> bool:
        if not self._active:
            return False
        return action in CONFIRMATION_ACTIONS

    def status(self) -> SafeModeStatus:
        with self._lock:
            if not self._active or self._started_at is None:
                return SafeModeStatus(active=False)
            return SafeModeStatus(
                active=True,
                start_time=datetime.fromtimestamp(self._started_at, UTC).isoformat(),
                duration=self._clock() - self._started_at,
                restrictions=self._restrictions,
            )
