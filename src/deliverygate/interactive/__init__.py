"""
Interactive adapters - human-in-the-loop decisions on the terminal.

These block workflow execution until a human answers.
"""

from deliverygate.interactive.human import RichCheckpointResolver, RichConfirmer

__all__ = [
    "RichCheckpointResolver",
    "RichConfirmer",
]
