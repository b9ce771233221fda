import os
from typing import Optional

import typer

from slurmtunnel.core import load_probe, ssh_pid_from_auth_sock
from slurmtunnel.log import configure_logging
from slurmtunnel.watcher import LivenessWatcher, WatcherMarker, WatcherSettings, cancel_job


def watch_job(
    job_id: int = typer.Option(..., "--job-id", help="Job to cancel once the client is gone"),
    user: str = typer.Option(..., "--user", help="Owner of the watcher marker"),
    strategy: str = typer.Option("socket", "--strategy", help="Liveness signal: socket or pid"),
    grace_period: int = typer.Option(300, "--grace-period", help="Seconds to wait after the client disappears"),
    arm_delay: int = typer.Option(120, "--arm-delay", help="Seconds to wait before monitoring starts"),
    poll_interval: int = typer.Option(1, "--poll-interval", help="Seconds between liveness checks"),
    process_pattern: str = typer.Option("code", "--process-pattern", help="Process name the socket strategy looks for"),
    marker_dir: str = typer.Option("$HOME", "--marker-dir", help="Directory holding the per-user marker file"),
    ssh_pid: Optional[int] = typer.Option(None, "--ssh-pid", help="sshd pid for the pid strategy (default: from SSH_AUTH_SOCK)"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write watcher logs to this file"),
):
    """
    Run the liveness watcher on a compute node (started by the job step)
    """
    configure_logging(debug=bool(log_file), log_file=log_file)
    if ssh_pid is None:
        ssh_pid = ssh_pid_from_auth_sock(os.environ.get("SSH_AUTH_SOCK"))

    settings = WatcherSettings(
        job_id=job_id,
        user=user,
        strategy=strategy,
        grace_period=grace_period,
        arm_delay=arm_delay,
        poll_interval=poll_interval,
        marker_dir=marker_dir,
        process_pattern=process_pattern,
        ssh_pid=ssh_pid,
    )
    try:
        probe = load_probe(strategy, process_pattern=process_pattern, ssh_pid=ssh_pid)
    except ValueError as e:
        typer.echo(f"✗ {e}", err=True)
        raise typer.Exit(code=2)

    watcher = LivenessWatcher(settings, probe, cancel_job, WatcherMarker(marker_dir, user))
    watcher.run()
