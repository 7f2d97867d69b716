"""Completions command for funnelctl CLI.

Prints a shell completion script built by click's shell_completion support.
"""

from __future__ import annotations

__all__ = ["completions"]

import click
from click.shell_completion import get_completion_class

from funnelctl.constants import APP_NAME

SHELLS = ("bash", "zsh", "fish")

# Environment variable click checks to switch into completion mode
COMPLETE_VAR = f"_{APP_NAME.upper()}_COMPLETE"


@click.command("completions")
@click.argument("shell", type=click.Choice(SHELLS))
@click.pass_context
def completions(ctx: click.Context, shell: str) -> None:
    """Print the completion script for SHELL.

    Examples:
        funnelctl completions bash > ~/.local/share/bash-completion/completions/funnelctl
        funnelctl completions zsh > "${fpath[1]}/_funnelctl"
        funnelctl completions fish > ~/.config/fish/completions/funnelctl.fish
    """
    completion_class = get_completion_class(shell)
    if completion_class is None:
        raise click.BadParameter(f"unsupported shell: {shell}", param_hint="SHELL")

    root = ctx.find_root().command
    script = completion_class(root, {}, APP_NAME, COMPLETE_VAR).source()
    click.echo(script)
