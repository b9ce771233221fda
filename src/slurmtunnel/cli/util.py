from rich.table import Table

from slurmtunnel.config import TunnelConfig
from slurmtunnel.nodes import expand_nodelist
from slurmtunnel.profile import ConnectionProfile


def _value(text) -> str:
    if text is None or text == "":
        return "[red]<missing>[/red]"
    return str(text)


def config_table(config: TunnelConfig, path: str) -> Table:
    table = Table(title=f"SlurmTunnel Configuration ({path})")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    for key in ("ssh_binary", "ssh_config_file", "connect_timeout", "strict_host_key_checking",
                "stdin_timeout", "allocation_command", "remote_shell", "debug", "log_file"):
        table.add_row(key, str(getattr(config, key)))
    for key, value in vars(config.watcher).items():
        table.add_row(f"watcher.{key}", str(value))
    return table


def profile_table(profile: ConnectionProfile, allocation_command: str) -> Table:
    table = Table(title=f"Resolved Profile: {profile.alias}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    table.add_row("user", _value(profile.user))
    table.add_row("hostname", _value(profile.hostname))
    table.add_row("identityfile", _value(profile.identity_file))
    table.add_row("remotecommand", _value(profile.remote_command))
    table.add_row("job name", _value(profile.job_name))
    table.add_row("login target", profile.login_target)
    requests = profile.requests_allocation(allocation_command)
    table.add_row("allocation", "[green]yes[/green]" if requests else "no (plain ssh)")
    return table


def nodes_table(nodelist: str) -> Table:
    table = Table(title=f"Node list: {nodelist}")
    table.add_column("Index", style="cyan", justify="right")
    table.add_column("Node", style="magenta")
    for idx, node in enumerate(expand_nodelist(nodelist)):
        table.add_row(str(idx), node)
    return table
