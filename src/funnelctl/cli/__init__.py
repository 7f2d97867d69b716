"""Command-line interface for funnelctl.

Provides commands for opening Funnel tunnels, diagnosing prerequisites,
and generating shell completions.
"""

from .main import cli, main

__all__ = ["cli", "main"]
