"""Single point of consultation for both safety controls."""

import logging

from deliverygate.application.emergency_stop import EmergencyStop
from deliverygate.application.safe_mode import SafeMode
from deliverygate.domain.exceptions import ActionNotAllowed, EmergencyStopActive
from deliverygate.domain.interfaces import ConfirmationInterface
from deliverygate.domain.safety import EMERGENCY_ALLOWED_ACTIONS

logger = logging.getLogger(__name__)


class SafetyInterlocks:
    """
    Combines safe mode and emergency stop into one pre-dispatch check.

    Emergency stop is the stricter of the two: while stopped only
    introspection and ``resume`` are permitted, whatever safe mode says.
    """

    def __init__(self, safe_mode: SafeMode, emergency_stop: EmergencyStop):
        self.safe_mode = safe_mode
        self.emergency_stop = emergency_stop

    def is_allowed(self, action: str) -> bool:
        if self.emergency_stop.is_stopped:
            return action in EMERGENCY_ALLOWED_ACTIONS
        return self.safe_mode.is_allowed(action)

    def requires_confirmation(self, action: str) -> bool:
        return self.safe_mode.requires_confirmation(action)

    def authorize(
        self,
        action: str,
        confirmer: ConfirmationInterface | None = None,
        detail: str = "",
    ) -> None:
        """
        Raise unless ``action`` may run now.

        An action outside the safe mode allow-list is still permitted when
        it is in the confirmation set and ``confirmer`` approves it.

        Raises:
            EmergencyStopActive: The emergency stop is engaged
            ActionNotAllowed: Safe mode forbids the action or it was not confirmed
        """
        if self.emergency_stop.is_stopped:
            if action not in EMERGENCY_ALLOWED_ACTIONS:
                raise EmergencyStopActive(action)
            return

        if self.safe_mode.is_allowed(action):
            return

        if not self.safe_mode.requires_confirmation(action):
            raise ActionNotAllowed(action, "safe mode is active")
        if confirmer is None:
            raise ActionNotAllowed(action, "confirmation required in safe mode")
        if not confirmer.confirm(action, detail):
            logger.info("Confirmation declined for %s", action)
            raise ActionNotAllowed(action, "confirmation declined")
        logger.info("Confirmed %s under safe mode", action)

    def status(self) -> dict[str, object]:
        return {
            "safe_mode": self.safe_mode.status(),
            "emergency_stop": self.emergency_stop.status(),
        }
