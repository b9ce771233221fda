#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Session Launcher

Opens the two-hop session once an allocation is known: ssh proxy-jumps through
the login host to the allocated node and runs a job step there. The job step
replays whatever the editor piped on stdin, detaches the liveness watcher and
finally becomes a login shell.
"""

import os
import select
import shlex
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from slurmtunnel.allocation import AllocationResult
from slurmtunnel.errors import AllocationParseError
from slurmtunnel.profile import ConnectionProfile
from slurmtunnel.watcher import WatcherSettings, render_watcher_bootstrap

READ_CHUNK = 4096


@dataclass(frozen=True)
class Session:
    port: Optional[str]
    connect_timeout: int
    profile: ConnectionProfile
    allocation: AllocationResult


def read_stdin_commands(fd: int, timeout: float) -> List[str]:
    """Collect whatever is piped on ``fd`` until it stays quiet for ``timeout`` seconds.

    Reads the raw descriptor so no input is left behind in a Python buffer when
    the session's ssh inherits stdin.
    """
    if os.isatty(fd):
        return []

    chunks = []
    while True:
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            break
        data = os.read(fd, READ_CHUNK)
        if not data:
            break
        chunks.append(data)

    text = b"".join(chunks).decode("utf-8", errors="replace")
    # blank lines are kept: they may belong to a heredoc
    return text.splitlines()


def build_job_step_command(job_id: int, stdin_commands: List[str], bootstrap: str, shell: str = "/bin/bash") -> str:
    script = "\n".join(list(stdin_commands) + [bootstrap])
    return shlex.join(["srun", "--overlap", "--jobid", str(job_id), shell, "-lc", script])


class SessionLauncher:
    def __init__(self, executor, config):
        self.executor = executor
        self.config = config

    def _require_allocation(self, session: Session):
        allocation = session.allocation
        if allocation.job_id is None or not allocation.node:
            raise AllocationParseError(
                f"[{session.profile.alias}] allocation incomplete "
                f"(job_id={allocation.job_id}, node={allocation.raw_node}), refusing to launch"
            )

    def build_bootstrap(self, session: Session) -> str:
        settings = WatcherSettings.from_config(
            self.config.watcher,
            job_id=session.allocation.job_id,
            user=session.profile.user,
        )
        return render_watcher_bootstrap(
            settings,
            runtime=self.config.watcher.runtime,
            shell=self.config.remote_shell,
            python=self.config.watcher.python,
        )

    def build_session_args(self, session: Session, remote_command: str) -> List[str]:
        profile = session.profile
        args = ["-T", "-A"]
        if profile.identity_file:
            args += ["-i", profile.identity_file]
        if session.port:
            args += ["-D", session.port]
        args += [
            "-o", f"StrictHostKeyChecking={self.config.strict_host_key_checking}",
            "-o", f"ConnectTimeout={session.connect_timeout}",
            "-J", profile.login_target,
            profile.node_target(session.allocation.node),
            remote_command,
        ]
        return args

    def launch(self, session: Session, stdin_commands: List[str]) -> int:
        self._require_allocation(session)

        remote_command = build_job_step_command(
            session.allocation.job_id,
            stdin_commands,
            self.build_bootstrap(session),
            shell=self.config.remote_shell,
        )
        logger.debug(f"[{session.profile.alias}] stdin commands: {stdin_commands}")
        logger.debug(f"[{session.profile.alias}] job step: {remote_command}")
        logger.info(
            f"[{session.profile.alias}] 🚀 Connecting to {session.allocation.node} "
            f"(job {session.allocation.job_id}) via {session.profile.login_target}"
        )
        return self.executor.run_interactive(self.build_session_args(session, remote_command))
