"""
Mock capability for testing without real collaborators.

Returns scripted results in sequence; an exception in the script is raised
instead of returned.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from deliverygate.domain.interfaces import CapabilityInterface
from deliverygate.domain.models import CapabilityResult


@dataclass(frozen=True)
class RecordedCall:
    """One invocation seen by a MockCapability."""

    task: str
    inputs: tuple[str, ...]
    options: Mapping[str, Any] = field(default_factory=dict)


class MockCapability(CapabilityInterface):
    """Scripted capability that records every call."""

    def __init__(
        self,
        responses: Sequence[CapabilityResult | Exception] = (),
        default: CapabilityResult | None = None,
        on_invoke: Callable[[RecordedCall], None] | None = None,
    ):
        """
        Args:
            responses: Results (or exceptions to raise) returned in order
            default: Returned once responses are exhausted (success if None)
            on_invoke: Called with each recorded call before responding
        """
        self._responses = list(responses)
        self._default = default or CapabilityResult(success=True)
        self._on_invoke = on_invoke
        self._calls: list[RecordedCall] = []
        self._lock = threading.Lock()

    def invoke(
        self,
        task: str,
        inputs: Sequence[str],
        options: Mapping[str, Any],
    ) -> CapabilityResult:
        call = RecordedCall(task=task, inputs=tuple(inputs), options=dict(options))
        with self._lock:
            index = len(self._calls)
            self._calls.append(call)
            response = self._responses[index] if index < len(self._responses) else self._default

        if self._on_invoke is not None:
            self._on_invoke(call)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def calls(self) -> tuple[RecordedCall, ...]:
        with self._lock:
            return tuple(self._calls)

    @property
    def call_count(self) -> int:
        """Number of times invoke() has been called."""
        with self._lock:
            return len(self._calls)

    def reset(self) -> None:
        """Forget recorded calls so the responses are replayed."""
        with self._lock:
            self._calls.clear()


class DryRunCapability(CapabilityInterface):
    """
    Succeeds every task and fills each declared file output with a placeholder.

    Lets a whole catalog be walked without real collaborators. Directory
    outputs (trailing ``/``) are left alone.
    """

    def __init__(self, name: str):
        self.name = name

    def invoke(
        self,
        task: str,
        inputs: Sequence[str],
        options: Mapping[str, Any],
    ) -> CapabilityResult:
        outputs = {
            path: f"# {task}\n\nPlaceholder written by the {self.name} dry run.\n"
            for path in options.get("outputs", ())
            if not path.endswith("/")
        }
        return CapabilityResult(
            success=True,
            outputs=outputs,
            message=f"{self.name}: {task} (dry run)",
        )
