"""Command-line interface for llmgate."""

from llmgate.cli.main import cli, main

__all__ = ["cli", "main"]
