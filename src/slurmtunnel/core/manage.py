from typing import Optional

from slurmtunnel.core.base import LivenessProbe
from slurmtunnel.core.probes import PidProbe, SocketProbe


def load_probe(strategy: str, process_pattern: str = "code", ssh_pid: Optional[int] = None) -> LivenessProbe:
    if strategy == "socket":
        return SocketProbe(process_pattern=process_pattern)
    elif strategy == "pid":
        if ssh_pid is None:
            raise ValueError("pid strategy needs the ssh pid (is SSH_AUTH_SOCK forwarded?)")
        return PidProbe(ssh_pid)
    else:
        raise ValueError(f"Invalid watcher strategy: {strategy}")
