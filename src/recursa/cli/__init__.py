# src/recursa/cli/__init__.py
"""CLI package for Recursa.

This package provides the command-line interface using Typer.
The CLI is a thin wrapper around recursa.config and AgenticRAG.
"""

from recursa.cli.app import app, console

__all__ = ["app", "console"]
