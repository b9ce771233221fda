#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Command Line Interface for SlurmTunnel (Typer-based)

``slurmtunnel`` manages the config and inspects aliases; ``slurmtunnel-ssh`` is
the ssh replacement the editor calls and takes raw ssh arguments.
"""

import sys

import typer

from .init import init_slurmtunnel
from .show import show_config, resolve_alias, show_script
from .watch import watch_job

# Main Typer application
app = typer.Typer(
    name="slurmtunnel",
    help="SlurmTunnel - on-demand Slurm allocations behind a plain ssh alias",
    add_completion=False,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command(name="init")(init_slurmtunnel)
app.command(name="config")(show_config)
app.command(name="resolve")(resolve_alias)
app.command(name="script")(show_script)
app.command(name="watch")(watch_job)


def main():
    """Main entry point for the CLI."""
    app()


def ssh_main():
    """Entry point used in place of ssh, e.g. VS Code's remote.SSH.path."""
    from slurmtunnel.proxy import run

    sys.exit(run(sys.argv[1:]))


# Add the main entry point for the script
if __name__ == "__main__":
    main()
