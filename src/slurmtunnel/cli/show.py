import typer
import rich
from rich.panel import Panel
from rich.syntax import Syntax

from slurmtunnel.allocation import AllocationRequest, AllocationResult, build_allocation_script
from slurmtunnel.config import load_config, default_config_path
from slurmtunnel.errors import ConfigError
from slurmtunnel.launcher import Session, SessionLauncher, build_job_step_command
from slurmtunnel.log import configure_logging
from slurmtunnel.nodes import extract_prefix_and_number
from slurmtunnel.profile import resolve_profile
from slurmtunnel.ssh_executor import build_executor
from slurmtunnel.cli.util import config_table, profile_table, nodes_table


def _init_config(config_path: str, verbose: bool = False):
    try:
        config = load_config(config_path)
    except ConfigError as e:
        rich.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    configure_logging(debug=verbose or config.debug)
    return config


def show_config(
    config_path: str = typer.Option(None, "--path", "-p", help="Path to the config file"),
):
    """
    Display the effective configuration (file values plus environment overrides)
    """
    config = _init_config(config_path)
    rich.print(config_table(config, config_path or default_config_path()))


def resolve_alias(
    alias: str = typer.Argument(..., help="ssh host alias"),
    config_path: str = typer.Option(None, "--path", "-p", help="Path to the config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output"),
):
    """
    Show what the wrapper resolves for an ssh alias
    """
    config = _init_config(config_path, verbose)
    profile = resolve_profile(alias, build_executor(config, verbose))
    rich.print(profile_table(profile, config.allocation_command))


def show_script(
    alias: str = typer.Argument(..., help="ssh host alias"),
    job_id: int = typer.Option(12345, "--job-id", help="Job id used to render the job step"),
    nodelist: str = typer.Option("node1", "--nodes", help="Node list used to render the job step"),
    config_path: str = typer.Option(None, "--path", "-p", help="Path to the config file"),
):
    """
    Print the remote scripts for an alias without running anything remotely
    """
    config = _init_config(config_path)
    profile = resolve_profile(alias, build_executor(config))
    if not profile.requests_allocation(config.allocation_command):
        rich.print(f"[yellow]⚠ {alias} has no {config.allocation_command} RemoteCommand, ssh runs it unchanged[/yellow]")
        raise typer.Exit()

    allocation_script = build_allocation_script(AllocationRequest.from_profile(profile))
    rich.print(Panel(Syntax(allocation_script, "bash", word_wrap=True),
                     title=f"[bold blue]Allocation step on {profile.login_target}[/bold blue]"))

    session = Session(
        port=None,
        connect_timeout=config.connect_timeout,
        profile=profile,
        allocation=AllocationResult(job_id=job_id, node=extract_prefix_and_number(nodelist), raw_node=nodelist),
    )
    launcher = SessionLauncher(None, config)
    job_step = build_job_step_command(job_id, [], launcher.build_bootstrap(session), shell=config.remote_shell)
    rich.print(nodes_table(nodelist))
    rich.print(Panel(Syntax(job_step, "bash", word_wrap=True),
                     title=f"[bold blue]Job step on {session.allocation.node}[/bold blue]"))
