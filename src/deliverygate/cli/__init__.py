"""Command line interface: click commands, rich console output, logging setup."""

from deliverygate.cli.main import cli, main

__all__ = ["cli", "main"]
