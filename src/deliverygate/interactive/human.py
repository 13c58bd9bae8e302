"""
Human-in-the-loop checkpoint resolution and action confirmation.

Both block on CLI prompts until the human answers.
"""

import threading
from datetime import UTC, datetime

from rich.console import Console
from rich.prompt import Confirm, Prompt

from deliverygate.domain.interfaces import (
    CheckpointResolverInterface,
    ConfirmationInterface,
)
from deliverygate.domain.models import CheckpointResolution, HumanCheckpoint


class RichCheckpointResolver(CheckpointResolverInterface):
    """
    Shows the checkpoint purpose and questions, then asks for a decision.

    The resolver identity is asked once and reused for later checkpoints
    unless ``reviewer`` was given up front.
    """

    def __init__(self, reviewer: str | None = None, console: Console | None = None):
        """
        Args:
            reviewer: Identity recorded as resolved_by
            console: Console to prompt on (a fresh one by default)
        """
        self.reviewer = reviewer
        self.console = console or Console()

    def resolve(self, phase_id: str, checkpoint: HumanCheckpoint) -> CheckpointResolution:
        self.console.print(
            f"\n[bold yellow]═══ HUMAN CHECKPOINT: {phase_id} ═══[/bold yellow]"
        )
        self.console.print(f"[dim]Level: {checkpoint.level.value}[/dim]")
        self.console.print(f"\n[bold]{checkpoint.purpose}[/bold]")
        for question in checkpoint.questions:
            self.console.print(f"  • {question}")

        while not self.reviewer:
            self.reviewer = Prompt.ask(
                "\n[bold]Your name[/bold]", console=self.console
            ).strip()

        approved = Confirm.ask("\n[bold]Approve and continue?[/bold]", console=self.console)
        notes = Prompt.ask(
            "[bold]Notes[/bold]" if approved else "[bold]Rejection reason[/bold]",
            default="",
            console=self.console,
        )
        return CheckpointResolution(
            approved=approved,
            resolved_by=self.reviewer,
            notes=notes,
            resolved_at=datetime.now(UTC).isoformat(),
        )


class RichConfirmer(ConfirmationInterface):
    """Asks the human to confirm an action that safe mode holds back."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self._prompt_lock = threading.Lock()

    def confirm(self, action: str, detail: str = "") -> bool:
        # Parallel steps may ask at once; stdin serves one prompt at a time.
        with self._prompt_lock:
            self.console.print(f"\n[bold red]Safe mode:[/bold red] '{action}' needs confirmation")
            if detail:
                self.console.print(f"[dim]{detail}[/dim]")
            return Confirm.ask("[bold]Proceed?[/bold]", default=False, console=self.console)
