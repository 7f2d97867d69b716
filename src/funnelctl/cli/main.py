"""Main CLI entry point for funnelctl.

Defines the CLI group and registers all subcommands.

Commands:
    open        - Open a public HTTPS tunnel to a local port (alias: o)
    doctor      - Check Funnel prerequisites (alias: doc)
    completions - Print a shell completion script

Subcommand help:
    funnelctl COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys
from pathlib import Path

import click

from funnelctl import __version__
from funnelctl.utils.logging import configure_logging

from .commands.completions import completions
from .commands.doctor import doctor
from .commands.open import open_tunnel

# Short names accepted in place of full command names
COMMAND_ALIASES = {
    "o": "open",
    "doc": "doctor",
}


class ReorderedGroup(click.Group):
    """Custom group that resolves aliases and shows examples after commands."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, COMMAND_ALIASES.get(cmd_name, cmd_name))

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        # Report the canonical name so help and errors never show the alias
        _, command, remaining = super().resolve_command(ctx, args)
        return (command.name if command else None), command, remaining

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Examples:
  funnelctl open 8081                    Quick tunnel with random path
  funnelctl open 8081 --path /webhook    Custom path
  funnelctl open 8081 --ttl 30m          Auto-expire after 30 minutes
  funnelctl doctor                       Check Funnel prerequisites

Transport (open, doctor):
  Unix socket  Default; probes the standard tailscaled socket paths
  TCP          --localapi-port with --localapi-password-file (macOS/Windows)
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", is_flag=True, help="Show version")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs to this file as JSON lines",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: int, log_file: Path | None) -> None:
    """funnelctl: Short-lived public HTTPS tunnels via Tailscale Funnel."""
    if version:
        click.echo(f"funnelctl {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    try:
        configure_logging(verbose, log_file)
    except OSError as e:
        raise click.FileError(str(log_file), hint=str(e)) from e


# Register commands
cli.add_command(open_tunnel)
cli.add_command(doctor)
cli.add_command(completions)


def main() -> None:
    """CLI entry point."""
    cli()
