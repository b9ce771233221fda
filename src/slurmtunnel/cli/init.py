import os
from pathlib import Path

import rich
import typer

from slurmtunnel.config import TunnelConfig, default_config_path, save_config


def init_slurmtunnel(
    path: str = typer.Option(None, "--path", "-p", help="Path to the config file (default: ~/.slurmtunnel/config.yaml)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
):
    """
    Write a config file holding the defaults the wrapper would use anyway
    """
    target = os.path.expanduser(path) if path else default_config_path()
    if Path(target).exists() and not force:
        rich.print(f"[yellow]⚠ {target} already exists, use --force to overwrite[/yellow]")
        raise typer.Exit(code=1)

    save_config(TunnelConfig(), target)
    rich.print(f"[green]✓ Wrote {target}[/green]")
    rich.print("Point remote.SSH.path at [bold]slurmtunnel-ssh[/bold] and check an alias with "
               "[bold]slurmtunnel resolve <alias>[/bold]")
